from __future__ import annotations

from enum import Enum

from pixelmerge.errors import NotFoundError
from pixelmerge.tokens import TokenKey


class Platform(str, Enum):
    mailerLite = "mailerLite"
    mailchimp = "mailchimp"
    activeCampaign = "activeCampaign"
    hubspot = "hubspot"
    gohighlevel = "gohighlevel"
    generic = "generic"


# Shared by the library link builder and the build-link endpoint.
PLATFORM_MERGE_FIELDS: dict[Platform, dict[TokenKey, str]] = {
    Platform.mailerLite: {
        TokenKey.first_name: "{$name}",
        TokenKey.email: "{$email}",
        TokenKey.company: "{$company}",
    },
    Platform.mailchimp: {
        TokenKey.first_name: "*|FNAME|*",
        TokenKey.email: "*|EMAIL|*",
        TokenKey.company: "*|COMPANY|*",
    },
    Platform.activeCampaign: {
        TokenKey.first_name: "%FIRSTNAME%",
        TokenKey.email: "%EMAIL%",
        TokenKey.company: "%COMPANY%",
    },
    Platform.hubspot: {
        TokenKey.first_name: "{{ contact.firstname }}",
        TokenKey.email: "{{ contact.email }}",
        TokenKey.company: "{{ company.name }}",
    },
    Platform.gohighlevel: {
        TokenKey.first_name: "{{contact.first_name}}",
        TokenKey.email: "{{contact.email}}",
        TokenKey.company: "{{contact.company_name}}",
    },
    Platform.generic: {
        TokenKey.first_name: "{first_name}",
        TokenKey.email: "{email}",
        TokenKey.company: "{company}",
    },
}


def parse_platform(name: str) -> Platform:
    try:
        return Platform(name)
    except ValueError as exc:
        raise NotFoundError("Unknown platform") from exc


def merge_field(platform: Platform, token_key: TokenKey) -> str:
    mapped = PLATFORM_MERGE_FIELDS[platform].get(token_key)
    if mapped is not None:
        return mapped
    return f"{{{token_key.value}}}"


def merge_fields_for(platform: Platform, token_keys: list[TokenKey]) -> dict[str, str]:
    return {key.value: merge_field(platform, key) for key in token_keys}
