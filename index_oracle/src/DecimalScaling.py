"""DecimalScaling: Exact integer arithmetic between native and working precision.

Every ticker reports prices as integers at its own number of decimals. All
cross-pair arithmetic happens at a single working precision of
``SCALED_DECIMALS`` so that composing, inverting and averaging prices never
touches binary floating point and independent nodes agree bit for bit.

.. code-block:: python

    >>> price = scale_up(8, 70_000 * 10**8)
    >>> price == 70_000 * scaled_one()
    True
    >>> scale_down(8, price)
    7000000000000
    >>> invert_price(2 * scaled_one()) == 5 * 10**35
    True
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import ScalingError

# Working precision used for all intermediate math.
SCALED_DECIMALS = 36


def scaled_one(decimals: int = SCALED_DECIMALS) -> int:
    """Return the integer representation of 1.0 at ``decimals`` precision."""
    return 10**decimals


def _scale_factor(decimals: int) -> int:
    if decimals < 0 or decimals > SCALED_DECIMALS:
        raise ScalingError(
            f"cannot scale price with {decimals} decimals; "
            f"expected 0..{SCALED_DECIMALS}"
        )
    return 10 ** (SCALED_DECIMALS - decimals)


def scale_up(decimals: int, price: int) -> int:
    """Scale a native price up to the working precision.

    :param decimals: Native decimals of the price.
    :param price: Integer price at ``decimals`` precision.
    :returns: Integer price at ``SCALED_DECIMALS`` precision.
    :raises ScalingError: If ``decimals`` exceeds the working precision.
    """
    return price * _scale_factor(decimals)


def scale_down(decimals: int, price: int) -> int:
    """Scale a working-precision price down to ``decimals``.

    Digits beyond ``decimals`` are truncated; they are insignificant at the
    target precision.

    :param decimals: Target decimals.
    :param price: Integer price at ``SCALED_DECIMALS`` precision.
    :returns: Integer price at ``decimals`` precision.
    :raises ScalingError: If ``decimals`` exceeds the working precision.
    """
    return price // _scale_factor(decimals)


def invert_price(price: int, decimals: int = SCALED_DECIMALS) -> int:
    """Return ``1 / price`` at the same precision.

    :param price: Positive integer price at ``decimals`` precision.
    :param decimals: Precision of ``price`` and of the result.
    :returns: ``(10**decimals)**2 // price``.
    :raises ScalingError: If ``price`` is zero or negative.
    """
    if price <= 0:
        raise ScalingError(f"cannot invert non-positive price {price}")
    one = scaled_one(decimals)
    return (one * one) // price


def multiply_scaled(a: int, b: int, decimals: int = SCALED_DECIMALS) -> int:
    """Fixed-point multiply of two prices at ``decimals`` precision."""
    return (a * b) // scaled_one(decimals)


def to_native_price(value: Decimal | str | int, decimals: int) -> int:
    """Convert a provider observation to an integer at ``decimals`` precision.

    Decimal strings and :class:`~decimal.Decimal` values are truncated at
    ``decimals``; integers are taken as whole units. Floats are refused
    because their binary representation is not reproducible across nodes.

    :param value: Observed price.
    :param decimals: Native decimals of the ticker.
    :returns: Integer price.
    :raises ScalingError: If the value is a float, not a finite number, or
        negative.

    .. code-block:: python

        >>> to_native_price("70000.123456789", 8)
        7000012345678
    """
    if isinstance(value, float) or isinstance(value, bool):
        raise ScalingError(f"refusing non-decimal price {value!r}")

    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ScalingError(f"invalid price {value!r}") from e

    if not dec.is_finite():
        raise ScalingError(f"price must be finite, got {value!r}")
    if dec < 0:
        raise ScalingError(f"price must not be negative, got {value!r}")

    # Work on the digit tuple directly; Decimal arithmetic would round to the
    # context precision.
    _, digits, exponent = dec.as_tuple()
    coefficient = int("".join(str(d) for d in digits))
    shift = exponent + decimals
    if shift >= 0:
        return coefficient * 10**shift
    return coefficient // 10**-shift


def format_price(price: int, decimals: int) -> str:
    """Render an integer price at ``decimals`` precision as a decimal string.

    .. code-block:: python

        >>> format_price(7700000000000, 8)
        '77000'
        >>> format_price(110000, 5)
        '1.1'
    """
    sign = "-" if price < 0 else ""
    digits = str(abs(price))
    if decimals == 0:
        return sign + digits

    digits = digits.rjust(decimals + 1, "0")
    whole, frac = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{sign}{whole}.{frac}" if frac else f"{sign}{whole}"
