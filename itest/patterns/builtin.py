"""Builtin step patterns — always present regardless of external configuration.

Buckets are listed in the order the translator scans them. Within a bucket the
registry re-sorts by priority, so the order here only breaks priority ties.
"""

from __future__ import annotations

from itest.models.patterns import PatternDefinition

BUILTIN_PATTERNS_VERSION = "1.0"

_CHECK_CONTAINS_TEMPLATE = """\
extract ${element} -> actual
expect_contains $actual ${expected}
"""

_ASSERT_TITLE_TEMPLATE = """\
title -> current
expect_contains $current ${text}
"""

BUILTIN_PATTERNS: dict[str, list[PatternDefinition]] = {
    "goto": [
        PatternDefinition(
            name="basic_navigation",
            pattern=r"^(打开|访问|导航到).*?\s*((?:https?://|%\w+%)\S*)$",
            groups=["action", "url"],
            priority=100,
            description="基本导航操作",
        ),
        PatternDefinition(
            name="simple_goto",
            pattern=r"^(?:转到|跳转到).*?\s*((?:https?://|%\w+%)\S*)$",
            groups=["url"],
            priority=100,
            description="简单导航",
        ),
        PatternDefinition(
            name="refresh_page",
            pattern=r"^(刷新|重新加载|[Rr]efresh|[Rr]eload)(?:\s*页面|\s+page)?(?:.*?\s+(https?://\S+))?$",
            groups=["action", "url"],
            priority=100,
            description="刷新页面",
        ),
        PatternDefinition(
            name="go_back",
            pattern=r"^(返回|后退|[Gg]o back|[Bb]ack)(?:\s*(?:上一页|页面)|\s+page)?(?:.*?\s+(https?://\S+))?$",
            groups=["action", "url"],
            priority=100,
            description="返回上一页",
        ),
        PatternDefinition(
            name="open_url",
            pattern=r"^(?i:open|visit|go to|navigate to)\s+.*?((?:https?://|%\w+%)\S*)$",
            groups=["url"],
            priority=80,
            description="Navigate to a URL",
        ),
    ],
    "extract": [
        PatternDefinition(
            name="extract_with_variable",
            pattern=r"^提取\s*(.+?)(?:\s*到变量\s*(\w+))?$",
            groups=["target", "variable"],
            priority=100,
            description="提取数据到变量",
        ),
        PatternDefinition(
            name="get_and_save",
            pattern=r"^获取\s*(.+?)(?:\s*并保存为\s*(\w+))?$",
            groups=["target", "variable"],
            priority=100,
            description="获取并保存数据",
        ),
        PatternDefinition(
            name="read_data",
            pattern=r"^读取\s*(.+?)(?:\s*存储到\s*(\w+))?$",
            groups=["target", "variable"],
            priority=100,
            description="读取数据",
        ),
        PatternDefinition(
            name="capture_text",
            pattern=r"^捕获\s*(.+?)(?:文本)?(?:\s*到\s*(\w+))?$",
            groups=["target", "variable"],
            priority=90,
            description="捕获文本内容",
        ),
        PatternDefinition(
            name="extract_into",
            pattern=r"^(?i:extract)\s+(.+?)(?:\s+(?i:into|as)\s+(\w+))?$",
            groups=["target", "variable"],
            priority=80,
            description="Extract data, optionally into a named variable",
        ),
    ],
    "observe": [
        PatternDefinition(
            name="find_elements",
            pattern=r"^查找\s*(.+)$",
            groups=["target"],
            priority=100,
            description="查找元素",
        ),
        PatternDefinition(
            name="observe_elements",
            pattern=r"^观察\s*(.+)$",
            groups=["target"],
            priority=100,
            description="观察元素",
        ),
        PatternDefinition(
            name="check_elements",
            pattern=r"^检查\s*(?!.*是否包含)(.+?)(?:元素)?$",
            groups=["target"],
            priority=100,
            description="检查元素",
        ),
        PatternDefinition(
            name="scan_page",
            pattern=r"^扫描\s*(.+)$",
            groups=["target"],
            priority=90,
            description="扫描页面",
        ),
        PatternDefinition(
            name="locate_elements",
            pattern=r"^(?i:find|observe|locate)\s+(.+)$",
            groups=["target"],
            priority=80,
            description="Locate elements on the page",
        ),
    ],
    "agent": [
        PatternDefinition(
            name="execute_task",
            pattern=r"^执行任务\s*(.+)$",
            groups=["instruction"],
            priority=100,
            description="执行代理任务",
        ),
        PatternDefinition(
            name="smart_execute",
            pattern=r"^智能执行\s*(.+)$",
            groups=["instruction"],
            priority=100,
            description="智能执行",
        ),
        PatternDefinition(
            name="automate_workflow",
            pattern=r"^自动化\s*(.+)$",
            groups=["instruction"],
            priority=100,
            description="自动化工作流",
        ),
        PatternDefinition(
            name="ai_assist",
            pattern=r"^AI辅助\s*(.+)$",
            groups=["instruction"],
            priority=90,
            description="AI辅助执行",
        ),
    ],
    "act": [
        PatternDefinition(
            name="input_text",
            pattern=r"^在\s*(.+?)\s*中输入\s*(.+)$",
            groups=["element", "value"],
            priority=100,
            description="在元素中输入文本",
        ),
        PatternDefinition(
            name="click_element",
            pattern=r"^点击\s*(.+)$",
            groups=["element"],
            priority=100,
            description="点击元素",
        ),
        PatternDefinition(
            name="select_option",
            pattern=r"^选择\s*(.+?)\s*中的\s*(.+)$",
            groups=["dropdown", "option"],
            priority=100,
            description="选择下拉选项",
        ),
        PatternDefinition(
            name="select_from_dropdown",
            pattern=r"^从\s*(.+?)\s*中选择\s*(.+)$",
            groups=["dropdown", "option"],
            priority=100,
            description="从下拉框选择",
        ),
        PatternDefinition(
            name="check_contains",
            pattern=r"^检查\s*(.+?)\s*是否包含\s*(.+)$",
            groups=["element", "expected"],
            priority=100,
            description="检查元素是否包含文本",
            template=_CHECK_CONTAINS_TEMPLATE,
        ),
        PatternDefinition(
            name="verify_display",
            pattern=r"^验证\s*(.+?)\s*显示\s*(.+)$",
            groups=["element", "expected"],
            priority=100,
            description="验证元素显示内容",
            template=_CHECK_CONTAINS_TEMPLATE,
        ),
        PatternDefinition(
            name="wait_for_element",
            pattern=r"^等待\s*(.+?)\s*出现$",
            groups=["element"],
            priority=100,
            description="等待元素出现",
        ),
        PatternDefinition(
            name="take_screenshot",
            pattern=r"^(?:截图|截屏)(?:保存为)?\s*(.+)$",
            groups=["name"],
            priority=100,
            description="截图保存",
        ),
        PatternDefinition(
            name="clear_input",
            pattern=r"^清空\s*(.+)$",
            groups=["element"],
            priority=90,
            description="清空输入框",
        ),
        PatternDefinition(
            name="hover_element",
            pattern=r"^悬停\s*(.+)$",
            groups=["element"],
            priority=90,
            description="鼠标悬停",
        ),
        PatternDefinition(
            name="scroll_to_element",
            pattern=r"^滚动到\s*(.+)$",
            groups=["element"],
            priority=90,
            description="滚动到元素",
        ),
        PatternDefinition(
            name="type_into",
            pattern=r"^(?i:type)\s+(.+?)\s+(?i:into)\s+(.+)$",
            groups=["value", "element"],
            priority=80,
            description="Type text into an element",
        ),
        PatternDefinition(
            name="click",
            pattern=r"^(?i:click)\s+(.+)$",
            groups=["element"],
            priority=80,
            description="Click an element",
        ),
    ],
    "template": [
        PatternDefinition(
            name="assert_title",
            pattern=r"^(?:断言|验证)标题包含\s*(.+)$",
            groups=["text"],
            priority=100,
            description="断言页面标题包含文本",
            template=_ASSERT_TITLE_TEMPLATE,
        ),
    ],
}
