from typing import NewType

UserOperationHash = NewType('UserOperationHash', str)
Address = NewType('Address', str)
TaskId = NewType('TaskId', str)
