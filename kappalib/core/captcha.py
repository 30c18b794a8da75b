"""
Cloudflare Turnstile 人机验证

创建资料和发表评论使用两个不同站点密钥，因此各自持有一个验证器实例
"""
from typing import Optional

import httpx
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class TurnstileVerifier:
    """Turnstile 令牌验证器"""

    def __init__(
        self,
        secret: Optional[str],
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = 5.0,
        name: str = "turnstile",
        transport: Optional[httpx.BaseTransport] = None,
        max_attempts: int = 2,
        wait=None,
    ):
        """
        Args:
            secret: 服务端密钥；为空时所有验证都会失败
            verify_url: 验证接口地址
            timeout: 请求超时秒数
            name: 日志中显示的验证器名称
            transport: 自定义 httpx 传输层（测试时注入）
            max_attempts: 网络错误时的最大尝试次数
            wait: tenacity 等待策略，默认指数退避
        """
        self.secret = secret
        self.verify_url = verify_url
        self.name = name
        self.max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=0.5, max=2)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        """
        验证前端提交的 Turnstile 令牌

        网络错误会重试；重试耗尽、HTTP 错误和响应解析失败都视为验证失败

        Args:
            token: 前端获得的令牌
            remote_ip: 用户 IP（可选）

        Returns:
            是否通过验证
        """
        if not self.secret:
            logger.warning(f"{self.name}: 未配置 Turnstile 密钥，验证一律失败")
            return False
        if not token:
            return False

        form = {"secret": self.secret, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            response = retrying(self._client.post, self.verify_url, data=form)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{self.name}: Turnstile 验证请求失败: {e}")
            return False

        if not isinstance(result, dict):
            logger.error(f"{self.name}: Turnstile 响应格式错误: {result!r}")
            return False

        success = result.get("success") is True
        if not success:
            logger.info(f"{self.name}: Turnstile 验证未通过: {result.get('error-codes')}")
        return success

    def close(self) -> None:
        self._client.close()
