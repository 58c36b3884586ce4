# SSRS Reports Client
# File: tests/test_parameters.py
# Version: v2

from __future__ import annotations

from datetime import date, datetime

import pytest

from ssrs_reports.errors import MissingParameterError, ValidationError
from ssrs_reports.models import ParameterValue, ReportParameter
from ssrs_reports.parameters import (
    ALL_VALID_VALUES,
    encode_uri_component,
    format_parameters,
    format_parameters_for_url,
    to_soap_values,
)


def _pairs(values):
    return [(v.name, v.value) for v in values]


def test_mapping_multivalue_becomes_one_entry_per_value() -> None:
    out = format_parameters({"Region": ["East", "West"]})

    assert to_soap_values(out) == [
        {"Name": "Region", "Value": "East"},
        {"Name": "Region", "Value": "West"},
    ]


def test_mapping_date_is_formatted_month_day_year() -> None:
    out = format_parameters({"StartDate": date(2024, 1, 15)})
    assert to_soap_values(out) == [{"Name": "StartDate", "Value": "01/15/2024"}]


def test_mapping_datetime_and_scalars() -> None:
    out = format_parameters({"At": datetime(2023, 12, 31, 23, 59), "Top": 10, "Flag": True})
    assert _pairs(out) == [("At", "12/31/2023"), ("Top", 10), ("Flag", True)]


def test_mapping_empty_list_sends_single_null_under_key() -> None:
    assert _pairs(format_parameters({"Region": []})) == [("Region", None)]


def test_none_and_empty_input() -> None:
    assert format_parameters(None) == []
    assert format_parameters({}) == []
    assert format_parameters([]) == []


def test_invalid_shape_raises_validation_error() -> None:
    with pytest.raises(ValidationError):
        format_parameters("Region=East")  # type: ignore[arg-type]


def test_descriptor_all_valid_values_expands() -> None:
    params = [
        {
            "Name": "Region",
            "Value": [ALL_VALID_VALUES],
            "ValidValues": {"ValidValue": [{"Value": "East"}, {"Value": "West"}, {"Value": "North"}]},
        }
    ]

    out = format_parameters(params)

    assert _pairs(out) == [("Region", "East"), ("Region", "West"), ("Region", "North")]


def test_descriptor_nullable_missing_value_sends_null() -> None:
    params = [
        ReportParameter(name="Region", value="", nullable=True),
        ReportParameter(name="Customer", value=None, allow_blank=True),
    ]
    assert _pairs(format_parameters(params)) == [("Region", None), ("Customer", None)]


def test_descriptor_strict_missing_raises() -> None:
    params = [ReportParameter(name="Year", value=None)]

    with pytest.raises(MissingParameterError) as exc_info:
        format_parameters(params, strict=True)

    assert str(exc_info.value) == "Parameter Year cannot be undefined!"
    assert exc_info.value.name == "Year"


def test_descriptor_non_strict_missing_passes_value_through() -> None:
    assert _pairs(format_parameters([ReportParameter(name="Year", value=None)])) == [("Year", None)]


def test_descriptor_zero_is_not_missing() -> None:
    out = format_parameters([ReportParameter(name="Count", value=0)], strict=True)
    assert _pairs(out) == [("Count", 0)]


def test_descriptor_datetime_type_formats_iso_string() -> None:
    params = [{"Name": "From", "ParameterTypeName": "DateTime", "Value": "2024-03-05"}]
    assert _pairs(format_parameters(params)) == [("From", "03/05/2024")]


def test_descriptor_empty_list_sends_null() -> None:
    assert _pairs(format_parameters([ReportParameter(name="Region", value=[])])) == [("Region", None)]


def test_descriptor_uses_default_values_when_value_missing() -> None:
    params = [{"Name": "Region", "DefaultValues": {"Value": ["East", "West"]}}]
    assert _pairs(format_parameters(params)) == [("Region", "East"), ("Region", "West")]


def test_formatting_is_idempotent_on_wire_entries() -> None:
    first = format_parameters({"Region": ["East", "West"], "Start": date(2024, 1, 15)})
    descriptors = [{"Name": v.name, "Value": v.value} for v in first]

    second = format_parameters(descriptors)

    assert second == first
    assert all(isinstance(v, ParameterValue) for v in second)


# ---------------------------------------------------------------------------
# URL access
# ---------------------------------------------------------------------------


def test_url_params_empty() -> None:
    assert format_parameters_for_url(None) == ""
    assert format_parameters_for_url({}) == ""


def test_url_params_value_encoding() -> None:
    query = format_parameters_for_url(
        {
            "Region": ["East", "West Coast"],
            "Active": False,
            "Start": date(2024, 1, 15),
            "Customer": None,
            "Name": "A&B",
        }
    )

    assert query == (
        "&Region=East%2CWest%20Coast"
        "&Active=False"
        "&Start=01/15/2024"
        "&Customer:IsNull=True"
        "&Name=A%26B"
    )


def test_url_params_descriptor_form() -> None:
    query = format_parameters_for_url(
        [
            {"Name": "From", "ParameterTypeName": "DateTime", "Value": "2024-02-01"},
            {"Name": "Ids", "Value": [{"Value": 1}, {"Value": 2}]},
        ]
    )
    assert query == "&From=02/01/2024&Ids=1%2C2"


def test_encode_uri_component_keeps_unreserved_marks() -> None:
    assert encode_uri_component("a b/c(d)*'!~") == "a%20b%2Fc(d)*'!~"
