from .gateway import DecryptionOracle, OracleGateway, OracleRequest
from .local import LocalOracle

__all__ = ["DecryptionOracle", "OracleGateway", "OracleRequest", "LocalOracle"]
