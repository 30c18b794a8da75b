"""
头像处理与存储

上传的图片居中裁剪为正方形，缩放到固定尺寸后重新编码为 JPEG，
再写入 S3 兼容的对象存储
"""
import threading
from io import BytesIO
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from PIL import Image, UnidentifiedImageError

from kappalib.exceptions import AvatarBusyError, StorageError, UnsupportedFormatError

# 带 MPF 段的相机 JPEG 会被 Pillow 识别为 MPO
ALLOWED_FORMATS = {"JPEG", "MPO", "PNG"}
AVATAR_CONTENT_TYPE = "image/jpeg"
AVATAR_CACHE_CONTROL = "public, max-age=3600"


def avatar_key(profile_id: str) -> str:
    """对象存储中的头像路径"""
    return f"avatars/{profile_id}.jpg"


def process_avatar(data: bytes, size: int = 250, quality: int = 85) -> bytes:
    """
    生成正方形 JPEG 头像

    Args:
        data: 原始图片字节
        size: 输出边长（像素）
        quality: JPEG 质量

    Returns:
        JPEG 字节

    Raises:
        UnsupportedFormatError: 无法解码或不是 JPEG/PNG
    """
    try:
        with Image.open(BytesIO(data)) as im:
            image_format = im.format
            if image_format not in ALLOWED_FORMATS:
                raise UnsupportedFormatError(image_format)
            im.load()

            width, height = im.size
            side = min(width, height)
            left = (width - side) // 2
            top = (height - side) // 2
            cropped = im.crop((left, top, left + side, top + side))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise UnsupportedFormatError() from e

    # PNG 可能带透明通道，JPEG 需要 RGB
    resized = cropped.convert("RGB").resize((size, size), Image.Resampling.BICUBIC)

    buffer = BytesIO()
    resized.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


class AvatarStorage(Protocol):
    """头像存储接口"""

    def put_avatar(self, profile_id: str, data: bytes) -> str:
        ...


class S3AvatarStorage:
    """基于 S3 兼容对象存储（MinIO、AWS S3 等）的头像存储"""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = True,
        region: str = "us-east-1",
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
    ):
        """
        Args:
            endpoint: 服务地址（host:port，不含协议）
            access_key: 访问密钥 ID
            secret_key: 访问密钥
            bucket: 存储桶名称
            secure: 是否使用 HTTPS
            region: 区域名称
            connect_timeout: 连接超时秒数
            read_timeout: 读取超时秒数
        """
        self.bucket = bucket
        scheme = "https" if secure else "http"
        self._client = boto3.client(
            "s3",
            endpoint_url=f"{scheme}://{endpoint}",
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 3, "mode": "standard"},
                s3={"addressing_style": "path"},
            ),
        )
        logger.info(f"对象存储已配置: {endpoint}/{bucket}")

    def put_avatar(self, profile_id: str, data: bytes) -> str:
        """
        上传头像

        Returns:
            对象路径

        Raises:
            StorageError: 上传失败
        """
        key = avatar_key(profile_id)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=AVATAR_CONTENT_TYPE,
                CacheControl=AVATAR_CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"头像上传失败: {key}: {e}")
            raise StorageError("头像上传失败", details={"key": key}) from e
        logger.debug(f"头像已上传: {key} ({len(data)} bytes)")
        return key


class AvatarProcessor:
    """
    头像处理器

    图片解码和缩放占用大量内存，通过信号量限制全进程同时处理的数量
    """

    def __init__(
        self,
        storage: Optional[AvatarStorage],
        max_concurrency: int = 5,
        wait_timeout: float = 10.0,
        size: int = 250,
        quality: int = 85,
    ):
        self.storage = storage
        self.wait_timeout = wait_timeout
        self.size = size
        self.quality = quality
        self._semaphore = threading.BoundedSemaphore(max_concurrency)

    def process_and_store(self, profile_id: str, data: bytes) -> str:
        """
        处理并上传头像

        Returns:
            对象路径

        Raises:
            StorageError: 未配置对象存储或上传失败
            AvatarBusyError: 等待处理名额超时
            UnsupportedFormatError: 图片格式不支持
        """
        if self.storage is None:
            raise StorageError("对象存储未配置")

        if not self._semaphore.acquire(timeout=self.wait_timeout):
            logger.warning(f"头像处理名额已满，拒绝请求: {profile_id}")
            raise AvatarBusyError()
        try:
            image = process_avatar(data, size=self.size, quality=self.quality)
            return self.storage.put_avatar(profile_id, image)
        finally:
            self._semaphore.release()
