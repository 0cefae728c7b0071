from .cipher import CipherEngine
from .codes import CodeDeriver, is_well_formed, normalize
from .payload import PayloadCodec

__all__ = ["CipherEngine", "CodeDeriver", "PayloadCodec", "is_well_formed", "normalize"]
