# SSRS Reports Client
# File: parameters.py
# Version: v7

"""Report parameter formatting.

Callers pass parameters in one of two shapes:

- a mapping ``{name: value}``, or
- a sequence of descriptors (``ReportParameter`` objects or dicts shaped
  like the server's ``ItemParameter``: ``Name``, ``Value``,
  ``ParameterTypeName``, ``Nullable``, ``AllowBlank``, ``ValidValues``).

The shape is resolved once in :func:`format_parameters` and handed to one
of two pure functions. The wire form is a flat list of ``ParameterValue``
entries; a multivalue parameter becomes several entries with the same
(case-sensitive) name.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Iterable, List, Sequence, Union
from urllib.parse import quote

from .errors import MissingParameterError, ValidationError
from .models import ParameterValue, ReportParameter
from .utils import get_field

# Single-element list value meaning "every valid value of this parameter".
ALL_VALID_VALUES = "all validValues"

DATE_FORMAT = "%m/%d/%Y"

# Characters left alone by JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"
_URL_MULTIVALUE_SEPARATOR = "%2C"

ParametersInput = Union[
    Mapping,
    Sequence[Union[ReportParameter, Mapping]],
    None,
]


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def format_date(value: Any) -> Any:
    """Format a date (or ISO date string) as ``MM/DD/YYYY``.

    Strings that are not ISO dates are passed through unchanged.
    """
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).strftime(DATE_FORMAT)
        except ValueError:
            return value
    return value


def _is_descriptor_list(params: Any) -> bool:
    return isinstance(params, (list, tuple))


def format_parameters(params: ParametersInput, strict: bool = False) -> List[ParameterValue]:
    """Normalise caller parameters into the wire list form.

    ``strict`` only applies to the descriptor form: a parameter that is
    neither nullable nor blank-allowed and has no value raises
    :class:`MissingParameterError`.
    """
    if params is None:
        return []
    if isinstance(params, Mapping):
        return _format_mapping(params)
    if _is_descriptor_list(params):
        return _format_descriptors([ReportParameter.from_raw(p) for p in params], strict)
    raise ValidationError(
        "Report parameters must be a mapping or a list of parameter "
        f"descriptors, got {type(params).__name__}."
    )


def _format_descriptors(
    descriptors: Iterable[ReportParameter], strict: bool = False
) -> List[ParameterValue]:
    formatted: List[ParameterValue] = []

    for param in descriptors:
        name = param.name
        value = param.value

        if isinstance(value, date) or (
            param.type_name == "DateTime" and not _is_missing(value)
        ):
            formatted.append(ParameterValue(name, format_date(value)))
        elif (param.allow_blank or param.nullable) and _is_missing(value):
            formatted.append(ParameterValue(name, None))
        elif strict and _is_missing(value):
            raise MissingParameterError(name)
        elif isinstance(value, (list, tuple)):
            if not value:
                formatted.append(ParameterValue(name, None))
            elif len(value) == 1 and value[0] == ALL_VALID_VALUES:
                formatted.extend(ParameterValue(name, v) for v in param.valid_values)
            else:
                formatted.extend(ParameterValue(name, v) for v in value)
        else:
            formatted.append(ParameterValue(name, value))

    return formatted


def _format_mapping(params: Mapping) -> List[ParameterValue]:
    formatted: List[ParameterValue] = []

    for name, value in params.items():
        if isinstance(value, date):
            formatted.append(ParameterValue(name, format_date(value)))
        elif isinstance(value, (list, tuple)):
            if not value:
                formatted.append(ParameterValue(name, None))
            else:
                formatted.extend(ParameterValue(name, v) for v in value)
        else:
            formatted.append(ParameterValue(name, value))

    return formatted


def to_soap_values(values: Iterable[ParameterValue]) -> List[dict]:
    return [v.to_soap() for v in values]


# ---------------------------------------------------------------------------
# URL access query string
# ---------------------------------------------------------------------------


def encode_uri_component(value: Any) -> str:
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


def _url_value(value: Any) -> str:
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, date):
        return format_date(value)
    return encode_uri_component(value)


def _url_part(name: str, value: Any, declared_date: bool = False) -> str:
    if isinstance(value, (list, tuple)):
        items = [_url_value(get_field(v, "Value", default=v)) for v in value]
        return f"{name}={_URL_MULTIVALUE_SEPARATOR.join(items)}"
    if value is None:
        return f"{name}:IsNull=True"
    if declared_date:
        return f"{name}={format_date(value)}"
    return f"{name}={_url_value(value)}"


def format_parameters_for_url(params: ParametersInput) -> str:
    """Render parameters as ``&name=value`` pairs for URL access.

    Dates are ``MM/DD/YYYY``, booleans ``True``/``False``, multiple values
    are joined with a literal ``%2C`` and missing values become
    ``name:IsNull=True``.
    """
    if not params:
        return ""

    parts: List[str] = []
    if isinstance(params, Mapping):
        for name, value in params.items():
            parts.append(_url_part(str(name), value))
    elif _is_descriptor_list(params):
        for raw in params:
            param = ReportParameter.from_raw(raw)
            declared_date = param.type_name == "DateTime" and not _is_missing(param.value)
            parts.append(_url_part(param.name, param.value, declared_date))
    else:
        raise ValidationError(
            "Report parameters must be a mapping or a list of parameter "
            f"descriptors, got {type(params).__name__}."
        )

    return "&" + "&".join(parts) if parts else ""
