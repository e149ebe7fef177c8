from .auth_utils import Principal, create_access_token, decode_token, get_current_user

__all__ = [
    "Principal",
    "create_access_token",
    "decode_token",
    "get_current_user",
]
