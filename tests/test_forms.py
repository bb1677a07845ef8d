"""Tests for forms.py: form, AuthState and meta refresh scraping."""

from conftest import ACS_URL, LOGIN_PAGE, SAML_PAGE

from moodesk_sso.forms import extract_auth_state, extract_form, extract_meta_refresh


class TestExtractForm:
    def test_saml_form(self):
        form = extract_form(SAML_PAGE)
        assert form.action == ACS_URL
        assert form.inputs["SAMLResponse"] == "PHNhbWxwOlJlc3BvbnNlPg=="
        assert form.has_saml_response

    def test_unescapes_amp(self):
        form = extract_form(SAML_PAGE)
        assert form.inputs["RelayState"].endswith("login.php?wants&passive=off")

    def test_unescapes_action(self):
        html = '<form action="/acs?a=1&amp;b=2"><input name="x" value="1"></form>'
        assert extract_form(html).action == "/acs?a=1&b=2"

    def test_no_form(self):
        html = '<html><body><input name="SAMLResponse" value="abc"></body></html>'
        form = extract_form(html)
        assert form.action is None
        assert not form.has_saml_response

    def test_empty_document(self):
        assert extract_form("").action is None

    def test_first_form_wins(self):
        html = '<form action="/first"></form><form action="/second"></form>'
        assert extract_form(html).action == "/first"

    def test_skips_form_without_action(self):
        html = '<form id="search"></form><form action="/real"></form>'
        assert extract_form(html).action == "/real"

    def test_case_insensitive_tags(self):
        html = '<FORM METHOD="post" ACTION="/acs"><INPUT TYPE="hidden" NAME="SAMLResponse" VALUE="abc"></FORM>'
        form = extract_form(html)
        assert form.action == "/acs"
        assert form.inputs == {"SAMLResponse": "abc"}

    def test_inputs_need_name_and_value(self):
        form = extract_form(LOGIN_PAGE)
        assert "password" not in form.inputs
        assert "AuthState" in form.inputs

    def test_inputs_outside_form_are_collected(self):
        html = '<input name="outside" value="1"><form action="/x"><input name="inside" value="2"></form>'
        assert extract_form(html).inputs == {"outside": "1", "inside": "2"}


class TestExtractAuthState:
    def test_found_and_unescaped(self):
        assert extract_auth_state(LOGIN_PAGE) == "_8f2c1a&http://ukmfolio.ukm.my/saml"

    def test_name_case_insensitive(self):
        html = '<input type="hidden" name="authstate" value="abc">'
        assert extract_auth_state(html) == "abc"

    def test_custom_field_name(self):
        html = '<input type="hidden" name="execution" value="e1s1">'
        assert extract_auth_state(html, "execution") == "e1s1"
        assert extract_auth_state(html) is None

    def test_missing(self):
        assert extract_auth_state("<html><body>Welcome back</body></html>") is None

    def test_empty_value(self):
        assert extract_auth_state('<input name="AuthState" value="">') is None


class TestExtractMetaRefresh:
    def test_found(self):
        html = '<html><head><meta http-equiv="refresh" content="0;url=https://ukmfolio.ukm.my/my/"></head></html>'
        assert extract_meta_refresh(html) == "https://ukmfolio.ukm.my/my/"

    def test_quoted_url(self):
        html = "<meta http-equiv=\"Refresh\" content=\"0; URL='/login/index.php'\">"
        assert extract_meta_refresh(html) == "/login/index.php"

    def test_ignores_other_meta(self):
        assert extract_meta_refresh('<meta name="viewport" content="width=device-width">') is None
