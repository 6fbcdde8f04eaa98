from typing import Optional

from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    """Exception for a missing or unusable actor identity."""

    def __init__(self, detail: str = "Could not identify the acting user"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )


class NotFoundError(HTTPException):
    """Referenced ward, patient or appointment does not exist."""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ValidationError(HTTPException):
    """Malformed input, rejected before any store mutation."""

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class ConflictError(HTTPException):
    """
    The operation conflicts with current state.

    Raised when the transaction retry budget is exhausted under contention,
    and when a ward that still has admitted patients is deleted.
    """

    def __init__(self, detail: str = "The resource was modified concurrently, please retry"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class CapacityError(HTTPException):
    """Admission or transfer would exceed the ward's total beds."""

    def __init__(
        self,
        ward_name: str,
        occupied_beds: int,
        total_beds: int,
        ward_id: Optional[str] = None,
    ):
        self.ward_id = ward_id
        self.ward_name = ward_name
        self.occupied_beds = occupied_beds
        self.total_beds = total_beds
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{ward_name} is at full capacity ({occupied_beds}/{total_beds} beds occupied)",
        )
