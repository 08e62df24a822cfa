import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class PricingError(Exception):
    """Base class for errors raised by the pricing core."""


class InvalidInputError(PricingError):
    """
    Raised for values the pricing core cannot work with: non-positive
    price, term, bandwidth or rate factor, a zero denominator, or a
    currency code outside the configured set.
    """


class NotFoundError(PricingError):
    """Raised when an operation targets an id absent from the store."""


def api_exception_handler(exc, context):
    """
    Map pricing errors to 400 / 404 responses; everything else goes
    through DRF's default handler.
    """
    if isinstance(exc, InvalidInputError):
        return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, NotFoundError):
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    return exception_handler(exc, context)
