"""
Field Mapping Engine

Turns data column names into the human readable descriptions the fill API
uses to locate form fields:
1. Exact lookup of the normalized column name in a mapping table
2. Ordered regex rules against the raw header (advisory mapping for the UI)
3. Fallback to the column name itself
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Pattern, Tuple

from .models import DataSourceKind, FieldDescriptor

logger = logging.getLogger(__name__)

MappingTable = Mapping[str, str]


def normalize_key(key: str) -> str:
    """Lowercase and collapse whitespace runs into underscores."""
    return re.sub(r"\s+", "_", str(key).lower())


DEFAULT_FIELD_MAPPINGS: MappingTable = MappingProxyType(
    {
        # Company / names
        "title": "Title or Company Name",
        "company_name": "Company Name",
        "company": "Company Name",
        "surname": "Surname or Last Name",
        "last_name": "Surname or Last Name",
        "lastname": "Surname or Last Name",
        "name": "First Name",
        "first_name": "First Name",
        "firstname": "First Name",
        # Address
        "street": "Street Address",
        "address": "Street Address",
        "address_street": "Street Address",
        "number": "Street Number",
        "street_number": "Street Number",
        "postcode": "Postal Code",
        "postal_code": "Postal Code",
        "zip": "Postal Code",
        "zip_code": "Postal Code",
        "town": "Town or City",
        "city": "Town or City",
        "town_city": "Town or City",
        "country": "Country",
        # Banking
        "account_holder": "Account Holder Name",
        "iban": "IBAN Number",
        "swift": "SWIFT Code (BIC)",
        "swift_code": "SWIFT Code (BIC)",
        "bic": "SWIFT Code (BIC)",
        "currency": "Currency",
        "bank_account_number": "Bank Account Number",
        "account_number": "Bank Account Number",
        "routing_number": "Routing Number (US banks)",
        "bank_name": "Bank Name",
        "bank_street": "Bank Street Address",
        "bank_address": "Bank Street Address",
        "bank_number": "Bank Street Number",
        "bank_postcode": "Bank Postal Code",
        "bank_zip": "Bank Postal Code",
        "bank_town": "Bank Town or City",
        "bank_city": "Bank Town or City",
        "bank_country": "Bank Country",
        "swift_correspondent": "SWIFT Correspondent",
    }
)


@dataclass(frozen=True)
class FieldRule:
    """A header pattern and the description it resolves to."""

    pattern: Pattern[str]
    description: str

    def matches(self, header: str) -> bool:
        return bool(self.pattern.search(header))


def _rule(pattern: str, description: str) -> FieldRule:
    return FieldRule(re.compile(pattern, re.IGNORECASE), description)


# Order matters: the first matching rule wins.
TABULAR_FIELD_RULES: Tuple[FieldRule, ...] = (
    _rule(r"(title|company.*name)", "Title or Company Name"),
    _rule(r"(surname|last.*name)", "Surname or Last Name"),
    _rule(r"(first.*name|given.*name)", "First Name"),
    _rule(r"(street|address.*street)", "Street Address"),
    _rule(r"(number|street.*number)", "Street Number"),
    _rule(r"(postcode|postal.*code|zip)", "Postal Code"),
    _rule(r"(town|city)", "Town or City"),
    _rule(r"country", "Country"),
    _rule(r"account.*holder", "Account Holder Name"),
    _rule(r"iban", "IBAN Number"),
    _rule(r"(swift|bic)", "SWIFT Code (BIC)"),
    _rule(r"currency", "Currency"),
    _rule(r"(bank.*account|account.*number)", "Bank Account Number"),
    _rule(r"routing", "Routing Number (US banks)"),
    _rule(r"bank.*name", "Bank Name"),
)

TEXT_FIELD_RULES: Tuple[FieldRule, ...] = (
    _rule(r"(name|full.*name|first.*name)", "Name"),
    _rule(r"(email|e-mail)", "Email Address"),
    _rule(r"(phone|telephone|mobile|contact)", "Phone Number"),
    _rule(r"(address|street)", "Address"),
    _rule(r"(city|town)", "City"),
    _rule(r"(state|province)", "State/Province"),
    _rule(r"(zip|postal.*code|postcode)", "Postal Code"),
    _rule(r"(country)", "Country"),
    _rule(r"(company|organization)", "Company Name"),
    _rule(r"(title|position|job)", "Job Title"),
    _rule(r"(date|when)", "Date"),
    _rule(r"(signature|sign)", "Signature"),
)


@dataclass(frozen=True)
class FieldMapper:
    """Immutable mapping configuration shared by the converter and the generator."""

    default_table: MappingTable = field(default_factory=lambda: DEFAULT_FIELD_MAPPINGS)
    tabular_rules: Tuple[FieldRule, ...] = TABULAR_FIELD_RULES
    text_rules: Tuple[FieldRule, ...] = TEXT_FIELD_RULES

    def rules_for(self, source: DataSourceKind) -> Tuple[FieldRule, ...]:
        if source == DataSourceKind.TEXT:
            return self.text_rules
        return self.tabular_rules

    def describe_header(self, header: str, source: DataSourceKind = DataSourceKind.CSV) -> str:
        """First matching rule's description, or the header itself."""
        for rule in self.rules_for(source):
            if rule.matches(header):
                return rule.description
        return header

    def generate_mapping(
        self,
        headers: Iterable[str],
        source: DataSourceKind = DataSourceKind.CSV,
    ) -> Dict[str, str]:
        """
        Build an advisory normalized-key -> description mapping for display.

        Rules are tested against the raw header text; every header ends up
        in the result, unmatched ones mapping to themselves.
        """
        mapping: Dict[str, str] = {}
        for header in headers:
            mapping[normalize_key(header)] = self.describe_header(header, source)
        return mapping

    def to_field_data(
        self,
        row: Mapping[str, object],
        mapping_override: Optional[MappingTable] = None,
    ) -> Dict[str, FieldDescriptor]:
        """
        Convert one data row into the fill API's field_data payload.

        Args:
            row: Column name -> cell value for the selected record.
            mapping_override: Caller-supplied table replacing the default one.

        Returns:
            Original column name -> FieldDescriptor, for non-empty values only.
        """
        table = self.default_table if mapping_override is None else mapping_override
        field_data: Dict[str, FieldDescriptor] = {}
        for key, raw_value in row.items():
            if raw_value is None:
                continue
            value = str(raw_value).strip()
            if not value:
                continue
            description = table.get(normalize_key(key)) or key
            field_data[key] = FieldDescriptor(value=value, description=description)

        logger.debug("Converted row with %d columns into %d field(s)", len(row), len(field_data))
        return field_data


def field_data_to_payload(field_data: Mapping[str, FieldDescriptor]) -> Dict[str, Dict[str, str]]:
    """JSON-ready form of a converter result."""
    return {key: descriptor.to_dict() for key, descriptor in field_data.items()}
