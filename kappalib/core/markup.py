"""
Markdown 渲染与 HTML 净化

评论先按受限 Markdown 渲染，再经过白名单净化；即使渲染器存在缺陷，
输出中也只会留下白名单内的标签和 http(s) 链接
"""
import re

import markdown
import nh3

COMMENT_TAGS = {
    "p", "br", "strong", "b", "em", "i", "code", "pre", "blockquote",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li",
    "a", "img",
}
COMMENT_ATTRIBUTES = {
    "a": {"href"},
    "img": {"src", "alt", "title"},
}
URL_SCHEMES = {"http", "https"}
LINK_REL = "nofollow noreferrer"

_URL_ATTRIBUTES = {("a", "href"), ("img", "src")}
_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def _absolute_urls_only(element: str, attribute: str, value: str) -> str | None:
    # 禁止相对链接
    if (element, attribute) in _URL_ATTRIBUTES and not _ABSOLUTE_URL_RE.match(value.strip()):
        return None
    return value


def sanitize_comment_html(html: str) -> str:
    """按评论白名单净化 HTML"""
    return nh3.clean(
        html,
        tags=COMMENT_TAGS,
        attributes=COMMENT_ATTRIBUTES,
        url_schemes=URL_SCHEMES,
        link_rel=LINK_REL,
        attribute_filter=_absolute_urls_only,
        strip_comments=True,
    ).strip()


def render_comment(content: str) -> str:
    """
    将评论 Markdown 渲染为安全的 HTML

    只启用 Markdown 核心语法（不含表格、围栏代码块）

    Args:
        content: 用户输入的 Markdown 文本

    Returns:
        净化后的 HTML
    """
    unsafe = markdown.markdown(content, output_format="html")
    return sanitize_comment_html(unsafe)


def strip_markup(text: str) -> str:
    """移除全部标签，只保留文本"""
    return nh3.clean(text, tags=set(), attributes={})


def collapse_whitespace(text: str) -> str:
    """连续空白合并为单个空格并去除首尾空白"""
    return _WHITESPACE_RE.sub(" ", text).strip()
