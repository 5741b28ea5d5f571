"""Tests for the translation engine."""

import pytest

from itest.executor.context import ExecutionContext
from itest.executor.errors import InvalidDescriptor
from itest.models.descriptor import ActionDescriptor, ActionKind, Engine
from itest.models.patterns import PatternDefinition
from itest.patterns.builtin import BUILTIN_PATTERNS
from itest.patterns.registry import PatternRegistry
from itest.translator.placeholders import find_placeholders, resolve_placeholders
from itest.translator.templates import render_template
from itest.translator.translator import Translator, navigation_keyword


class TestPlaceholders:
    def test_find_placeholders_dedupes_in_order(self):
        assert find_placeholders("%A% x %B% y %A%") == ["A", "B"]

    def test_resolved_names_are_substituted(self):
        text, resolved, unresolved = resolve_placeholders("go %URL%", {"URL": "https://a.test"})
        assert text == "go https://a.test"
        assert resolved == {"URL": "https://a.test"}
        assert unresolved == []

    def test_unresolved_names_stay_literal(self):
        text, resolved, unresolved = resolve_placeholders("%A% and %MISSING%", {"A": "1"})
        assert text == "1 and %MISSING%"
        assert unresolved == ["MISSING"]

    def test_empty_value_counts_as_unresolved(self):
        text, resolved, unresolved = resolve_placeholders("%EMPTY%", {"EMPTY": ""})
        assert text == "%EMPTY%"
        assert resolved == {}
        assert unresolved == ["EMPTY"]


class TestRenderTemplate:
    def test_quote_applies_to_values_only(self):
        rendered = render_template("expect_contains $t ${text}", {"text": "a b"}, quote=lambda s: f"<{s}>")
        assert rendered == "expect_contains $t <a b>"

    def test_fills_known_slots(self):
        assert render_template('title -> t\nexpect_contains $t "${text}"', {"text": "首页"}) == \
            'title -> t\nexpect_contains $t "首页"'

    def test_unknown_slots_left_literal(self):
        assert render_template("${missing} ${a}", {"a": 1}) == "${missing} 1"


class TestNavigationKeyword:
    @pytest.mark.parametrize("action,expected", [
        ("刷新", "refresh"),
        ("重新加载", "refresh"),
        ("Reload", "refresh"),
        ("返回", "back"),
        ("后退", "back"),
        ("Go back", "back"),
        ("打开", None),
        (None, None),
    ])
    def test_keywords(self, action, expected):
        assert navigation_keyword(action) == expected


class TestTranslate:
    def test_goto_with_url(self, translator):
        d = translator.translate("打开登录页面 https://x.test")
        assert d.kind == ActionKind.GOTO
        assert d.params["url"] == "https://x.test"
        assert d.matched_pattern_name == "basic_navigation"
        assert d.is_builtin

    def test_click_pattern(self, translator):
        d = translator.translate("点击登录按钮")
        assert d.kind == ActionKind.ACT
        assert d.matched_pattern_name == "click_element"
        assert d.params == {"element": "登录按钮"}
        assert d.engine == Engine.RULES
        assert d.generated_code is None

    def test_refresh(self, translator):
        d = translator.translate("刷新页面")
        assert d.kind == ActionKind.GOTO
        assert d.params["action"] == "刷新"
        assert translator.validate(d)

    def test_extract_with_variable(self, translator):
        d = translator.translate("提取商品列表 到变量 products")
        assert d.kind == ActionKind.EXTRACT
        assert d.params == {"target": "商品列表", "variable": "products"}

    def test_extract_without_variable_skips_empty_capture(self, translator):
        d = translator.translate("提取页面标题")
        assert d.params == {"target": "页面标题"}

    def test_check_contains_renders_script(self, translator):
        d = translator.translate("检查用户名 是否包含 张三")
        assert d.kind == ActionKind.ACT
        assert d.matched_pattern_name == "check_contains"
        assert d.generated_code == "extract '用户名' -> actual\nexpect_contains $actual '张三'\n"

    def test_template_values_are_shell_quoted(self, translator):
        d = translator.translate('检查 价格 是否包含 $5 "起"')
        assert d.params["expected"] == '$5 "起"'
        assert d.generated_code.splitlines()[1] == """expect_contains $actual '$5 "起"'"""

    def test_check_elements_does_not_shadow_check_contains(self, translator):
        assert translator.translate("检查导航栏元素").kind == ActionKind.OBSERVE
        assert translator.translate("检查标题 是否包含 首页").kind == ActionKind.ACT

    def test_template_kind(self, translator):
        d = translator.translate("断言标题包含首页")
        assert d.kind == ActionKind.TEMPLATE
        assert "expect_contains $current '首页'" in d.generated_code

    def test_agent_instruction(self, translator):
        d = translator.translate("执行任务 完成结账流程")
        assert d.kind == ActionKind.AGENT
        assert d.params["instruction"] == "完成结账流程"

    def test_english_alias(self, translator):
        d = translator.translate("Open the site https://x.test/home")
        assert d.kind == ActionKind.GOTO
        assert d.params["url"] == "https://x.test/home"


class TestFallback:
    def test_unmatched_text_falls_back_to_act(self, translator):
        d = translator.translate("随便做点什么")
        assert d.kind == ActionKind.ACT
        assert d.params == {"raw": "随便做点什么"}
        assert d.matched_pattern_name == "default_fallback"
        assert d.is_builtin
        assert d.engine == Engine.DIRECT
        assert d.is_fallback
        assert translator.validate(d)

    def test_fallback_raw_is_resolved_text(self, translator, context):
        d = translator.translate("输入用户名 %USERNAME%", context)
        assert d.is_fallback
        assert d.params["raw"] == "输入用户名 alice"
        assert d.captured_variables == {"USERNAME": "alice"}

    def test_empty_step_is_invalid(self, translator):
        d = translator.translate("   ")
        assert d.invalid
        assert not translator.validate(d)


class TestPlaceholderResolution:
    def test_resolved_placeholder_not_present_after_translation(self, translator, context):
        d = translator.translate("打开登录页面 %LOGIN_URL%", context)
        assert d.kind == ActionKind.GOTO
        assert d.params["url"] == "https://example.com/login"
        assert "%LOGIN_URL%" not in d.resolved_text
        assert d.original_text == "打开登录页面 %LOGIN_URL%"

    def test_unresolved_placeholder_stays_literal(self, translator):
        d = translator.translate("打开登录页面 %NOPE%", ExecutionContext(variables={}))
        assert d.params["url"] == "%NOPE%"
        assert d.unresolved_placeholders == ["NOPE"]


class TestPriority:
    def test_higher_priority_custom_pattern_wins(self):
        custom = {"act": [PatternDefinition(
            name="login_button", pattern=r"^点击(登录按钮)$", groups=["button"], priority=200,
        )]}
        translator = Translator(PatternRegistry.build(custom=custom))
        d = translator.translate("点击登录按钮")
        assert d.matched_pattern_name == "login_button"
        assert not d.is_builtin
        assert d.params == {"button": "登录按钮"}

    def test_equal_priority_prefers_builtin(self):
        custom = {"act": [PatternDefinition(
            name="my_click", pattern=r"^点击\s*(.+)$", groups=["element"], priority=100,
        )]}
        translator = Translator(PatternRegistry.build(custom=custom))
        assert translator.translate("点击登录按钮").matched_pattern_name == "click_element"

    def test_bucket_order_beats_priority(self):
        custom = {"act": [PatternDefinition(name="grab", pattern=r"^提取(.+)$", groups=["x"], priority=999)]}
        translator = Translator(PatternRegistry.build(BUILTIN_PATTERNS, custom))
        assert translator.translate("提取标题").kind == ActionKind.EXTRACT

    def test_agent_engine_custom_pattern_has_no_code(self):
        custom = {"act": [PatternDefinition(
            name="ai_checkout", pattern=r"^结账$", priority=300, engine="agent", template="ignored",
        )]}
        translator = Translator(PatternRegistry.build(custom=custom))
        d = translator.translate("结账")
        assert d.engine == Engine.AGENT
        assert d.generated_code is None


class TestUrlSanitizing:
    def test_wrapped_prose_url_is_cleaned(self):
        custom = {"goto": [PatternDefinition(
            name="quoted", pattern=r"^前往\s*(.+)$", groups=["url"], priority=300,
        )]}
        translator = Translator(PatternRegistry.build(custom=custom))
        d = translator.translate("前往 `登录页面 https://example.com/login`")
        assert d.params["url"] == "https://example.com/login"


class TestValidate:
    def _descriptor(self, kind, **params):
        return ActionDescriptor(kind=kind, original_text="x", resolved_text="x", params=params)

    def test_goto_needs_url_or_keyword(self):
        assert Translator.validate(self._descriptor("goto", url="https://a.test"))
        assert Translator.validate(self._descriptor("goto", action="返回"))
        assert not Translator.validate(self._descriptor("goto", action="打开"))

    def test_extract_and_observe_need_target(self):
        assert not Translator.validate(self._descriptor("extract"))
        assert Translator.validate(self._descriptor("observe", target="按钮"))

    def test_agent_needs_instruction(self):
        assert not Translator.validate(self._descriptor("agent"))

    def test_unknown_kind_is_invalid(self):
        assert not Translator.validate(self._descriptor("teleport"))

    def test_ensure_valid_raises(self):
        with pytest.raises(InvalidDescriptor) as exc_info:
            Translator.ensure_valid(self._descriptor("extract"))
        assert exc_info.value.descriptor.kind == "extract"


class TestDescribe:
    def test_describe_goto(self, translator):
        assert translator.describe(translator.translate("打开 https://x.test")) == "Navigate to: https://x.test"

    def test_describe_fallback(self, translator):
        assert translator.describe(translator.translate("做点别的")) == "Act: 做点别的"

    def test_explain(self, translator):
        explained = translator.explain("提取标题 到变量 t")
        assert explained["valid"]
        assert explained["description"] == "Extract: 标题 -> t"
