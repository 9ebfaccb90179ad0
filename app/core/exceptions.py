from fastapi import HTTPException, status


class AuthenticationError(HTTPException):
    """Raised when the caller must sign in again."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
        )


class PaymentRequiredError(HTTPException):
    """Raised when an action needs a (renewed or upgraded) subscription.

    The detail carries a machine-readable code so the frontend can choose
    between the upgrade prompt and the renew prompt.
    """

    def __init__(self, code: str, message: str):
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"code": code, "message": message},
        )
