from dataclasses import dataclass
from enum import Enum


class UserOperationExceptionCode(Enum):
    InvalidFields = -32602
    MissingFactoryData = -32520
    UnsupportedEntryPointVersion = -32521
    SignatureExtraction = -32522
    MissingGasFields = -32523


@dataclass
class UserOperationException(Exception):
    exception_code: UserOperationExceptionCode
    message: str

    def __str__(self) -> str:
        return f"{self.exception_code.name}: {self.message}"


@dataclass
class EthClientException(Exception):
    message: str
    error_code: int | None = None

    def __str__(self) -> str:
        if self.error_code is None:
            return self.message
        return f"{self.message} (error code: {self.error_code})"
