"""Login page scraping.

The provider's interactive login page embeds a JSON description of its login
form in an element with ``id="modelJson"``. That blob carries the form's
anti-forgery token and the URL the credentials must be posted to.
"""

from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass
from typing import Any

import lxml.html
from lxml import etree

from luminus_auth.core.exceptions import LoginFormNotFoundError, ProtocolError
from luminus_auth.core.oidc.http import HTTPExchanger, extract_redirect_location

logger = logging.getLogger(__name__)

MODEL_JSON_ID = "modelJson"


@dataclass(frozen=True)
class AntiForgeryToken:
    """Form-scoped secret echoed back with the login submission."""

    name: str
    value: str

    def build_login_params(self, username: str, password: str) -> dict[str, str]:
        """Build the login form body."""
        return {
            "username": username,
            "password": password,
            self.name: self.value,
        }


@dataclass(frozen=True)
class LoginPageInfo:
    """Parsed contents of the login page's embedded JSON."""

    anti_forgery: AntiForgeryToken
    login_url: str

    @classmethod
    def from_dict(cls, data: Any) -> LoginPageInfo:
        """Decode the provider's JSON using its literal field names.

        Raises:
            LoginFormNotFoundError: If a required field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise LoginFormNotFoundError("Unable to decode JSON: expected an object")

        xsrf = data.get("antiForgery")
        login_url = data.get("loginUrl")
        if not isinstance(xsrf, dict) or not isinstance(login_url, str) or not login_url:
            raise LoginFormNotFoundError("Unable to decode JSON: missing antiForgery or loginUrl")

        name = xsrf.get("name")
        value = xsrf.get("value")
        if not isinstance(name, str) or not name or not isinstance(value, str):
            raise LoginFormNotFoundError("Unable to decode JSON: invalid antiForgery token")

        return cls(anti_forgery=AntiForgeryToken(name=name, value=value), login_url=login_url)


def parse_login_page(body: str) -> LoginPageInfo:
    """Extract LoginPageInfo from the HTML of the login page.

    Raises:
        LoginFormNotFoundError: If the embedded JSON is missing or cannot be decoded.
    """
    try:
        document = lxml.html.document_fromstring(body)
    except (etree.LxmlError, ValueError) as e:
        raise LoginFormNotFoundError(f"Unable to parse login page: {e}") from e

    elements = document.xpath(f"//*[@id='{MODEL_JSON_ID}']")
    if not elements:
        raise LoginFormNotFoundError("No JSON was sent")

    raw_json = elements[-1].text_content().strip()
    decoded = html.unescape(raw_json)

    try:
        data = json.loads(decoded)
    except json.JSONDecodeError as e:
        raise LoginFormNotFoundError(f"Unable to decode JSON: {e}") from e

    return LoginPageInfo.from_dict(data)


def fetch_login_page_info(exchanger: HTTPExchanger, authorization_url: str) -> LoginPageInfo:
    """Follow the authorization redirect to the login page and scrape it.

    Transport and cookie failures propagate unchanged; every other failure is
    reported as LoginFormNotFoundError. There is no retry.
    """
    response = exchanger.get(authorization_url)
    try:
        login_page_url = extract_redirect_location(response)
    except ProtocolError as e:
        raise LoginFormNotFoundError(f"Cannot locate login form: {e.reason}") from e

    logger.debug(f"Fetching login page {login_page_url}")
    response = exchanger.get(login_page_url)
    if response.status_code != 200:
        raise LoginFormNotFoundError(f"Cannot locate login form: login page returned HTTP {response.status_code}")

    try:
        body = response.text
    except (UnicodeDecodeError, LookupError) as e:
        raise LoginFormNotFoundError("Unable to read HTTP response body") from e

    return parse_login_page(body)
