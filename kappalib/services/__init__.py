"""
业务服务层

按请求绑定数据库会话的服务类：用户资料、评论审核和小说目录
"""
from kappalib.services.profiles import ProfileService, validate_display_name
from kappalib.services.comments import CommentService, comment_to_response
from kappalib.services.catalog import CatalogTTL, NovelCatalog

__all__ = [
    "ProfileService",
    "validate_display_name",
    "CommentService",
    "comment_to_response",
    "CatalogTTL",
    "NovelCatalog",
]
