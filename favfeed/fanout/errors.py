class FanoutError(Exception):
    """Base class for fan-out pipeline errors."""


class BatchNotFound(FanoutError):
    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} not found")
