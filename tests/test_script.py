"""Tests for the scripted-step interpreter."""

import pytest

from itest.executor.errors import ScriptAssertionError, ScriptError
from itest.executor.script import BindingRef, ScriptInterpreter, parse_script, split_words


class TestParseScript:
    def test_binding_and_quoting(self):
        lines = parse_script('extract "用户 名" -> actual\n\n# comment\nexpect_contains $actual "张三"\n')
        assert len(lines) == 2
        assert lines[0].op == "extract"
        assert lines[0].args == ["用户 名"]
        assert lines[0].bind == "actual"
        assert lines[1].number == 4

    def test_quoted_dollar_is_literal(self):
        line = parse_script("expect_contains $actual '$5' \"$x\"")[0]
        assert line.args == [BindingRef("actual"), "$5", "$x"]

    def test_adjacent_quoted_parts_join(self):
        assert split_words("""say 'it'"'"'s' a"b c"d""") == [("say", True), ("it's", False), ("ab cd", False)]

    def test_escaped_double_quote(self):
        assert split_words(r'"say \"hi"') == [('say "hi', False)]

    def test_quoted_arrow_is_not_a_binding(self):
        line = parse_script("act '->' x")[0]
        assert line.bind is None
        assert line.args == ["->", "x"]

    def test_unbalanced_quotes(self):
        with pytest.raises(ScriptError, match="line 1"):
            parse_script('extract "oops')

    def test_binding_without_operation(self):
        with pytest.raises(ScriptError, match="missing operation"):
            parse_script("-> x")


@pytest.mark.asyncio
class TestScriptInterpreter:
    async def test_extract_then_expect_contains(self, mock_session):
        mock_session.extract.return_value = "欢迎 张三"
        result = await ScriptInterpreter(mock_session).run(
            'extract "用户名" -> actual\nexpect_contains $actual "张三"\n'
        )
        mock_session.extract.assert_awaited_once_with("用户名", "auto")
        assert result.operations == 2
        assert result.bindings == {"actual": "欢迎 张三"}
        assert result.last is True

    async def test_failed_expectation(self, mock_session):
        mock_session.title.return_value = "Dashboard"
        with pytest.raises(ScriptAssertionError, match="to contain"):
            await ScriptInterpreter(mock_session).run('title -> t\nexpect_contains $t "首页"')

    async def test_assertion_error_is_an_assertion(self, mock_session):
        with pytest.raises(AssertionError):
            await ScriptInterpreter(mock_session).run("expect_equal a b")

    async def test_unknown_operation(self, mock_session):
        with pytest.raises(ScriptError, match="unknown operation 'eval'"):
            await ScriptInterpreter(mock_session).run("eval 1+1")

    async def test_wrong_arity(self, mock_session):
        with pytest.raises(ScriptError, match="takes 1-1 arguments"):
            await ScriptInterpreter(mock_session).run("goto")

    async def test_unknown_binding(self, mock_session):
        with pytest.raises(ScriptError, match="unknown binding"):
            await ScriptInterpreter(mock_session).run("expect_not_empty $nothing")

    async def test_initial_variables_are_bindings(self, mock_session):
        await ScriptInterpreter(mock_session, variables={"URL": "https://a.test"}).run("goto $URL")
        mock_session.navigate.assert_awaited_once_with("https://a.test")

    async def test_act_uses_fixed_timeout_and_retries(self, mock_session):
        await ScriptInterpreter(mock_session).run('act "点击 提交"')
        mock_session.act.assert_awaited_once_with("点击 提交", timeout=30000, retries=2)

    async def test_navigation_ops(self, mock_session):
        await ScriptInterpreter(mock_session).run("back\nreload")
        mock_session.go_back.assert_awaited_once()
        mock_session.reload.assert_awaited_once()

    async def test_agent_op(self, mock_session):
        await ScriptInterpreter(mock_session).run('agent "完成结账"')
        mock_session.run_agent_task.assert_awaited_once_with("完成结账", max_steps=20, feedback=False)

    async def test_wait_needs_number(self, mock_session):
        with pytest.raises(ScriptError, match="milliseconds"):
            await ScriptInterpreter(mock_session).run("wait soon")

    async def test_expect_not_empty_on_empty_list(self, mock_session):
        mock_session.observe.return_value = []
        with pytest.raises(ScriptAssertionError):
            await ScriptInterpreter(mock_session).run('observe "按钮" -> found\nexpect_not_empty $found')

    async def test_non_string_values_compare_as_json(self, mock_session):
        mock_session.extract.return_value = ["a", "b"]
        result = await ScriptInterpreter(mock_session).run('extract 列表 list -> rows\nexpect_contains $rows "\\"b\\""')
        assert result.operations == 2

    async def test_quoted_text_that_looks_like_a_binding(self, mock_session):
        mock_session.extract.return_value = "价格 $5"
        result = await ScriptInterpreter(mock_session).run("extract '价格' -> actual\nexpect_contains $actual '$5'")
        assert result.last is True
