class StockDeskError(Exception):
    """Domain failure surfaced to the client through the standard error envelope."""

    code = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StockAdjustmentError(StockDeskError):
    code = "adjustment_failed"
    status_code = 500
