"""Tests for the execution dispatcher."""

import pytest

from itest.executor.context import ExecutionContext
from itest.executor.dispatcher import (
    Dispatcher,
    classify_extraction,
    enrich_rule_error,
    normalize_agent_result,
    normalize_elements,
)
from itest.executor.errors import BackendExecutionError
from itest.models.config import RunnerConfig
from itest.models.descriptor import ActionDescriptor
from itest.models.execution import AgentTaskResult


class TestClassifyExtraction:
    @pytest.mark.parametrize("target,shape", [
        ("商品列表", "list"),
        ("用户表格", "list"),
        ("所有价格", "list"),
        ("页面文本", "text"),
        ("文章内容", "text"),
        ("下载链接", "links"),
        ("the page links", "links"),
        ("Table of users", "list"),
        ("页面标题", "auto"),
    ])
    def test_shapes(self, target, shape):
        assert classify_extraction(target) == shape


class TestNormalizers:
    def test_elements_get_one_based_index(self):
        elements = normalize_elements([
            {"description": "登录按钮", "selector": "#login", "type": "button"},
            {"selector": "a.home"},
        ])
        assert [e.index for e in elements] == [1, 2]
        assert elements[0].description == "登录按钮"
        assert elements[1].attributes == {}

    def test_elements_none(self):
        assert normalize_elements(None) == []

    def test_agent_result_from_mapping(self):
        result = normalize_agent_result({"steps": 3, "result": "ok", "completed": True})
        assert len(result.steps) == 3
        assert result.completed

    def test_agent_result_passthrough(self):
        original = AgentTaskResult(result="x")
        assert normalize_agent_result(original) is original


class TestEnrichRuleError:
    def test_message_contains_context(self):
        descriptor = ActionDescriptor(
            kind="act", original_text="检查用户名 是否包含 张三", resolved_text="检查用户名 是否包含 张三",
            params={"element": "用户名", "expected": "张三"},
            matched_pattern_name="check_contains", matched_pattern_source="^检查(.+)$",
            engine="rules", generated_code='extract "用户名" -> actual',
        )
        message = enrich_rule_error(descriptor, ValueError("boom"))
        assert message.startswith("Rule execution failed:")
        assert "Rule: check_contains" in message
        assert "Pattern: ^检查(.+)$" in message
        assert '"element": "用户名"' in message
        assert 'extract "用户名" -> actual' in message
        assert message.endswith("Cause: boom")


@pytest.mark.asyncio
class TestDispatchGoto:
    async def test_navigates_to_url(self, translator, dispatcher, mock_session, context, store):
        descriptor = translator.translate("打开登录页面 https://x.test", context)
        record = await dispatcher.execute(descriptor, mock_session, "login-flow", context)

        assert record.success
        mock_session.navigate.assert_awaited_once_with("https://x.test")
        assert record.result["page_title"] == "Example Page"
        assert record.workflow_id == "login-flow"
        assert store.records == [record]

    async def test_refresh_and_back(self, translator, dispatcher, mock_session, context):
        await dispatcher.execute(translator.translate("刷新页面"), mock_session, "w", context)
        await dispatcher.execute(translator.translate("返回上一页"), mock_session, "w", context)
        mock_session.reload.assert_awaited_once()
        mock_session.go_back.assert_awaited_once()
        mock_session.navigate.assert_not_awaited()

    async def test_unresolved_placeholder_uses_base_url(self, translator, dispatcher, mock_session):
        context = ExecutionContext(variables={}, base_url="http://localhost:3000")
        descriptor = translator.translate("打开首页 %HOME_URL%", context)
        record = await dispatcher.execute(descriptor, mock_session, "w", context)
        assert record.success
        mock_session.navigate.assert_awaited_once_with("http://localhost:3000")

    async def test_bare_variable_name_is_looked_up(self, dispatcher, mock_session, context):
        descriptor = ActionDescriptor(
            kind="goto", original_text="go LOGIN_URL", resolved_text="go LOGIN_URL",
            params={"url": "LOGIN_URL"},
        )
        await dispatcher.execute(descriptor, mock_session, "w", context)
        mock_session.navigate.assert_awaited_once_with("https://example.com/login")


@pytest.mark.asyncio
class TestDispatchExtract:
    async def test_explicit_variable_key(self, translator, dispatcher, mock_session, context, store):
        descriptor = translator.translate("提取商品列表 到变量 products", context)
        record = await dispatcher.execute(descriptor, mock_session, "w", context)

        mock_session.extract.assert_awaited_once_with("商品列表", "list")
        assert record.result["storage_key"] == "products"
        assert store.get_artifact("products") == ["row 1", "row 2"]
        assert record.result["data_size"] > 0

    async def test_generated_keys_do_not_collide(self, translator, dispatcher, mock_session, context, store):
        descriptor = translator.translate("提取页面标题", context)
        first = await dispatcher.execute(descriptor, mock_session, "w", context)
        second = await dispatcher.execute(descriptor, mock_session, "w", context)

        key1, key2 = first.result["storage_key"], second.result["storage_key"]
        assert key1 != key2
        assert key1.startswith("extracted_页面标题_")
        assert len(store.extracted_data()) == 2

    async def test_backend_failure_becomes_record(self, translator, dispatcher, mock_session, context, store):
        mock_session.extract.side_effect = BackendExecutionError("page crashed")
        record = await dispatcher.execute(translator.translate("提取标题", context), mock_session, "w", context)
        assert not record.success
        assert "page crashed" in record.error_message
        assert store.extracted_data() == {}
        assert len(store.records) == 1


@pytest.mark.asyncio
class TestDispatchObserve:
    async def test_zero_elements_is_success(self, translator, dispatcher, mock_session, context):
        record = await dispatcher.execute(translator.translate("查找提交按钮"), mock_session, "w", context)
        assert record.success
        assert record.result["elements_found"] == 0

    async def test_elements_are_normalized(self, translator, dispatcher, mock_session, context):
        mock_session.observe.return_value = [{"description": "提交", "selector": "#submit", "type": "button"}]
        record = await dispatcher.execute(translator.translate("查找提交按钮"), mock_session, "w", context)
        assert record.result["elements_found"] == 1
        assert record.result["elements"][0]["index"] == 1


@pytest.mark.asyncio
class TestDispatchAgent:
    async def test_agent_task(self, translator, dispatcher, mock_session, context):
        record = await dispatcher.execute(translator.translate("执行任务 完成结账"), mock_session, "w", context)
        mock_session.run_agent_task.assert_awaited_once_with("完成结账", max_steps=20, feedback=False)
        assert record.success
        assert record.result["steps"] == 2
        assert record.result["completed"]

    async def test_step_budget_is_fixed(self, translator, store, mock_session, context):
        dispatcher = Dispatcher(store, RunnerConfig(agent_max_steps=500))
        await dispatcher.execute(translator.translate("执行任务 完成结账"), mock_session, "w", context)
        assert mock_session.run_agent_task.await_args.kwargs["max_steps"] == 20

    async def test_agent_error_is_not_fatal_by_default(self, translator, dispatcher, mock_session, context):
        mock_session.run_agent_task.return_value = {"steps": [], "error": "gave up", "completed": False}
        record = await dispatcher.execute(translator.translate("执行任务 完成结账"), mock_session, "w", context)
        assert record.success
        assert record.result["error"] == "gave up"

    async def test_agent_error_fails_when_configured(self, translator, store, mock_session, context):
        dispatcher = Dispatcher(store, RunnerConfig(fail_on_agent_error=True))
        mock_session.run_agent_task.return_value = {"steps": [], "error": "gave up", "completed": False}
        record = await dispatcher.execute(translator.translate("执行任务 完成结账"), mock_session, "w", context)
        assert not record.success
        assert "gave up" in record.error_message


@pytest.mark.asyncio
class TestDispatchAct:
    async def test_fallback_uses_generic_act(self, translator, dispatcher, mock_session, context):
        descriptor = translator.translate("输入用户名 %USERNAME%", context)
        record = await dispatcher.execute(descriptor, mock_session, "w", context)
        mock_session.act.assert_awaited_once_with(
            "输入用户名 %USERNAME%", timeout=30000, retries=2, variables={"USERNAME": "alice"},
        )
        assert record.success

    async def test_rule_without_template_uses_generic_act(self, translator, dispatcher, mock_session, context):
        await dispatcher.execute(translator.translate("点击登录按钮"), mock_session, "w", context)
        mock_session.act.assert_awaited_once_with("点击登录按钮", timeout=30000, retries=2, variables=None)

    async def test_rule_script_runs_in_interpreter(self, translator, dispatcher, mock_session, context):
        mock_session.extract.return_value = "当前用户: 张三"
        record = await dispatcher.execute(
            translator.translate("检查用户名 是否包含 张三"), mock_session, "w", context,
        )
        assert record.success
        assert record.result["rule"] == "check_contains"
        mock_session.act.assert_not_awaited()

    async def test_rule_failure_is_enriched(self, translator, dispatcher, mock_session, context):
        mock_session.extract.return_value = "当前用户: 李四"
        record = await dispatcher.execute(
            translator.translate("检查用户名 是否包含 张三"), mock_session, "w", context,
        )
        assert not record.success
        assert record.error_message.startswith("Rule execution failed:")
        assert "Rule: check_contains" in record.error_message
        assert "Code:" in record.error_message

    async def test_dollar_text_in_expectation_is_literal(self, translator, dispatcher, mock_session, context):
        mock_session.extract.return_value = "价格 $5"
        record = await dispatcher.execute(
            translator.translate("检查 价格 是否包含 $5"), mock_session, "w", context,
        )
        assert record.success, record.error_message
        mock_session.extract.assert_awaited_once_with("价格", "auto")

    async def test_quote_in_expectation_is_literal(self, translator, dispatcher, mock_session, context):
        mock_session.extract.return_value = 'say "hi'
        record = await dispatcher.execute(
            translator.translate('检查 标题 是否包含 "hi'), mock_session, "w", context,
        )
        assert record.success, record.error_message

    async def test_fallback_failure_is_not_enriched(self, translator, dispatcher, mock_session, context):
        mock_session.act.side_effect = BackendExecutionError("no such element")
        record = await dispatcher.execute(translator.translate("做点别的"), mock_session, "w", context)
        assert record.error_message == "no such element"

    async def test_template_kind(self, translator, dispatcher, mock_session, context):
        mock_session.title.return_value = "首页 - Shop"
        record = await dispatcher.execute(translator.translate("断言标题包含首页"), mock_session, "w", context)
        assert record.success
        assert record.kind == "template"


@pytest.mark.asyncio
class TestDispatchValidation:
    async def test_invalid_descriptor_never_reaches_backend(self, dispatcher, mock_session, context, store):
        descriptor = ActionDescriptor(kind="extract", original_text="提取", resolved_text="提取")
        record = await dispatcher.execute(descriptor, mock_session, "w", context)
        assert not record.success
        assert "Invalid step configuration" in record.error_message
        mock_session.extract.assert_not_awaited()
        assert len(store.records) == 1

    async def test_empty_step(self, translator, dispatcher, mock_session, context):
        record = await dispatcher.execute(translator.translate(""), mock_session, "w", context)
        assert not record.success
        assert "empty step" in record.error_message
        mock_session.act.assert_not_awaited()
