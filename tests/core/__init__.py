"""
测试核心组件（令牌、缓存、搜索、审核通知、头像、限流）
"""
