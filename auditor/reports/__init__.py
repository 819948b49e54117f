from auditor.reports.pages import group_actions, page_entry, render_action_plan, render_page_markdown
from auditor.reports.writer import ReportWriter, render_markdown

__all__ = [
    "ReportWriter",
    "group_actions",
    "page_entry",
    "render_action_plan",
    "render_markdown",
    "render_page_markdown",
]
