"""Tests for drift detection."""

from pocketid_sync.clients.pocketid import (
    FederatedIdentity,
    OIDCClientCredentials,
    PocketIDGroup,
    PocketIDOIDCClient,
    PocketIDUser,
)
from pocketid_sync.core.declared import GroupParameters, OIDCClientParameters, UserParameters
from pocketid_sync.core.drift import (
    equal_maps,
    equal_multisets,
    group_is_up_to_date,
    oidc_client_is_up_to_date,
    user_is_up_to_date,
)


def test_multiset_ignores_order_but_counts_duplicates():
    assert equal_multisets(["a", "b"], ["b", "a"])
    assert not equal_multisets(["a", "a"], ["a"])
    assert equal_multisets(None, [])


def test_maps_treat_missing_as_empty():
    assert equal_maps(None, {})
    assert equal_maps({"a": "1"}, {"a": "1"})
    assert not equal_maps({"a": "1"}, {"a": "2"})


class TestUserDrift:
    def _spec(self, **overrides):
        values = dict(username="alice", email="a@example.com", first_name="Alice")
        values.update(overrides)
        return UserParameters(**values)

    def _remote(self, **overrides):
        values = dict(id="u1", username="alice", email="a@example.com", first_name="Alice")
        values.update(overrides)
        return PocketIDUser(**values)

    def test_matching_user_is_up_to_date(self):
        assert user_is_up_to_date(self._spec(), self._remote(is_admin=True, user_groups=["x"]))

    def test_changed_email_is_drift(self):
        assert not user_is_up_to_date(self._spec(email="b@example.com"), self._remote())

    def test_custom_claims_compared_as_map(self):
        spec = self._spec(custom_claims={"a": "1", "b": "2"})
        assert user_is_up_to_date(spec, self._remote(custom_claims={"b": "2", "a": "1"}))
        assert not user_is_up_to_date(spec, self._remote(custom_claims={"a": "1"}))


def test_group_drift_on_friendly_name():
    spec = GroupParameters(name="eng", friendly_name="Engineering")
    assert group_is_up_to_date(spec, PocketIDGroup(group_name="eng", friendly_name="Engineering"))
    assert not group_is_up_to_date(spec, PocketIDGroup(group_name="eng", friendly_name="Eng"))


class TestOIDCClientDrift:
    def _spec(self, **overrides):
        values = dict(
            name="grafana",
            callback_urls=["https://a/cb", "https://b/cb"],
            pkce_enabled=True,
        )
        values.update(overrides)
        return OIDCClientParameters(**values)

    def _remote(self, **overrides):
        values = dict(
            id="c1",
            client_name="grafana",
            redirect_uris=["https://a/cb", "https://b/cb"],
            require_pkce=True,
        )
        values.update(overrides)
        return PocketIDOIDCClient(**values)

    def test_reordered_callback_urls_are_not_drift(self):
        remote = self._remote(redirect_uris=["https://b/cb", "https://a/cb"])
        assert oidc_client_is_up_to_date(self._spec(), remote)

    def test_extra_callback_url_is_drift(self):
        remote = self._remote(redirect_uris=["https://a/cb", "https://b/cb", "https://c/cb"])
        assert not oidc_client_is_up_to_date(self._spec(), remote)

    def test_logo_is_not_drift(self):
        spec = self._spec(logo_url="https://cdn.example.com/logo.png")
        assert oidc_client_is_up_to_date(spec, self._remote(has_logo=False))

    def test_reauthentication_flag_is_drift(self):
        spec = self._spec(requires_reauthentication=True)
        assert not oidc_client_is_up_to_date(spec, self._remote())

    def test_federated_identities_compared_as_multiset(self):
        first = FederatedIdentity(issuer="https://ci", subject="repo:a")
        second = FederatedIdentity(issuer="https://ci", subject="repo:b")
        spec = self._spec(credentials=OIDCClientCredentials(federated_identities=[first, second]))

        reordered = self._remote(
            credentials=OIDCClientCredentials(federated_identities=[second, first])
        )
        missing = self._remote(credentials=OIDCClientCredentials(federated_identities=[first]))

        assert oidc_client_is_up_to_date(spec, reordered)
        assert not oidc_client_is_up_to_date(spec, missing)
