# Common utilities
from onioncourier.common.crypto import CryptoUtils as CryptoUtils
from onioncourier.common.logging_utils import setup_logger as setup_logger
from onioncourier.common.secure import SecureBuffer as SecureBuffer

__all__ = ["CryptoUtils", "SecureBuffer", "setup_logger"]
