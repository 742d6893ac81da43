import hashlib
import bcrypt


def _prehash(password: str) -> bytes:
    # bcrypt only reads 72 bytes; the digest keeps long passwords significant
    return hashlib.sha256(password.encode("utf-8")).digest()

def hash_password(password: str) -> str:
    return bcrypt.hashpw(_prehash(password), bcrypt.gensalt()).decode()

def verify_password(password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_prehash(password), hashed_password.encode())
    except ValueError:
        # not a bcrypt hash
        return False
