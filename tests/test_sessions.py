"""
Unit tests for identities and sessions.

Tests:
- Display name derivation
- Identity get-or-create
- Session issue / resolve / revoke / expiry
"""

import uuid

import pytest

from app.core.identity import IdentityResolver, derive_display_name
from app.core.sessions import SessionManager, hash_token
from app.models.identity import Identity
from app.models.session import UserSession


@pytest.fixture
def identities(clock):
    return IdentityResolver(clock=clock)


@pytest.fixture
def sessions(clock):
    return SessionManager(expire_days=30, clock=clock)


class TestIdentityResolver:
    """Test identity creation and reuse"""

    @pytest.mark.parametrize("email,expected", [
        ("ab12345@essex.ac.uk", "Student AB"),
        ("jd1@essex.ac.uk", "Student JD"),
        ("x@essex.ac.uk", "Student X"),
    ])
    def test_display_name(self, email, expected):
        assert derive_display_name(email) == expected

    def test_creates_on_first_resolve(self, identities, db_session, clock):
        identity = identities.resolve(db_session, "ab12345@essex.ac.uk")

        assert isinstance(identity.id, uuid.UUID)
        assert identity.email == "ab12345@essex.ac.uk"
        assert identity.display_name == "Student AB"
        assert identity.is_verified is True

    def test_resolve_is_idempotent(self, identities, db_session, clock):
        first = identities.resolve(db_session, "ab12345@essex.ac.uk")
        clock.advance(days=1)
        second = identities.resolve(db_session, "ab12345@essex.ac.uk")

        assert second.id == first.id
        assert second.display_name == "Student AB"
        assert db_session.query(Identity).count() == 1

    def test_existing_identity_marked_verified(self, identities, db_session):
        db_session.add(Identity(
            id=uuid.uuid4(),
            email="jd1@essex.ac.uk",
            display_name="Student JD",
            is_verified=False,
        ))
        db_session.commit()

        identity = identities.resolve(db_session, "jd1@essex.ac.uk")

        assert identity.is_verified is True

    def test_lost_insert_race_returns_winner(self, identities, db_session, monkeypatch):
        """A concurrent insert for the same email is read back, not duplicated"""
        winner_id = uuid.uuid4()
        db_session.add(Identity(
            id=winner_id,
            email="jd1@essex.ac.uk",
            display_name="Student JD",
            is_verified=True,
        ))
        db_session.commit()

        real_query = db_session.query
        calls = []

        def racing_query(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                # Our first read happens before the other request commits
                return real_query(*args, **kwargs).filter(Identity.email == "nobody@essex.ac.uk")
            return real_query(*args, **kwargs)

        monkeypatch.setattr(db_session, "query", racing_query)

        identity = identities.resolve(db_session, "jd1@essex.ac.uk")

        assert identity.id == winner_id
        assert real_query(Identity).count() == 1

class TestSessionManager:
    """Test session lifecycle"""

    def test_issue_and_resolve(self, identities, sessions, db_session):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")

        token = sessions.issue(db_session, identity)

        assert sessions.resolve(db_session, token).id == identity.id

    def test_only_digest_is_stored(self, identities, sessions, db_session):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")
        token = sessions.issue(db_session, identity)

        record = db_session.query(UserSession).one()

        assert record.token_hash == hash_token(token)
        assert record.token_hash != token

    def test_unverified_identity_rejected(self, sessions, db_session):
        identity = Identity(id=uuid.uuid4(), email="jd1@essex.ac.uk", display_name="Student JD", is_verified=False)

        with pytest.raises(ValueError):
            sessions.issue(db_session, identity)

    @pytest.mark.parametrize("token", [None, "", "garbage", "x" * 10000, 12345])
    def test_bad_tokens_resolve_to_none(self, sessions, db_session, token):
        assert sessions.resolve(db_session, token) is None

    def test_expired_session(self, identities, sessions, db_session, clock):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")
        token = sessions.issue(db_session, identity)

        clock.advance(days=30)

        assert sessions.resolve(db_session, token) is None
        assert db_session.query(UserSession).count() == 0

    def test_valid_just_before_expiry(self, identities, sessions, db_session, clock):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")
        token = sessions.issue(db_session, identity)

        clock.advance(days=29, hours=23)

        assert sessions.resolve(db_session, token) is not None

    def test_revoke_is_idempotent(self, identities, sessions, db_session):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")
        token = sessions.issue(db_session, identity)

        sessions.revoke(db_session, token)
        sessions.revoke(db_session, token)
        sessions.revoke(db_session, None)

        assert sessions.resolve(db_session, token) is None

    def test_purge_expired(self, identities, sessions, db_session, clock):
        identity = identities.resolve(db_session, "jd1@essex.ac.uk")
        sessions.issue(db_session, identity)
        clock.advance(days=31)
        fresh = sessions.issue(db_session, identity)

        assert sessions.purge_expired(db_session) == 1
        assert sessions.resolve(db_session, fresh) is not None

    def test_max_age(self, sessions):
        assert sessions.max_age_seconds == 30 * 24 * 60 * 60
