"""
密钥与随机码生成

所有随机值都来自 secrets（密码学安全随机源）：
- 访问密钥是唯一的身份凭证
- 同步码和头像种子需要防止被枚举
"""
import secrets

# 去掉易混淆字符 0/O/1/I，共 32 个字符
SYNC_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SYNC_CODE_LENGTH = 8

ADJECTIVES = [
    "神秘", "古老", "沉默", "迅捷", "孤独",
    "勇敢", "睿智", "自由", "骄傲", "狂野",
    "隐形", "遗忘", "幽影", "奇异", "安静",
]
ANIMALS = [
    "狐狸", "灰狼", "乌鸦", "猎鹰", "棕熊",
    "刺猬", "獾", "猞猁", "猫头鹰", "雪貂",
    "浣熊", "松鼠", "河狸", "豺", "仓鸮",
]


def new_secret_token() -> str:
    """生成 256 位访问密钥（64 位十六进制）"""
    return secrets.token_hex(32)


def new_avatar_seed() -> str:
    """生成 64 位头像种子（16 位十六进制），供外部头像渲染服务使用"""
    return secrets.token_hex(8)


def new_sync_code() -> str:
    """生成 8 位设备同步码"""
    return "".join(secrets.choice(SYNC_CODE_ALPHABET) for _ in range(SYNC_CODE_LENGTH))


def normalize_sync_code(code: str) -> str:
    """去除首尾空白并转大写"""
    return code.strip().upper()


def random_display_name() -> str:
    """随机生成 “形容词 动物” 形式的昵称（15 x 15 种组合）"""
    return f"{secrets.choice(ADJECTIVES)} {secrets.choice(ANIMALS)}"
