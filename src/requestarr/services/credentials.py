"""
WebAuthn and MFA credential store for Requestarr.

Covers the short-lived WebAuthn challenges, registered authenticators with
their signature counters, MFA verification/enrolment sessions and the
encrypted TOTP secret on the user row.
"""

from datetime import timedelta
from typing import Any, Literal

import structlog

from requestarr.core.security import FieldEncryption, get_field_encryption
from requestarr.database import DatabaseContext, utcnow
from requestarr.models import MfaSession, User, UserCredential, WebAuthnChallenge

logger = structlog.get_logger()

DEFAULT_CHALLENGE_TTL_SECONDS = 300

MfaSessionType = Literal["verify", "setup"]


def _credential_dict(row: UserCredential) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "name": row.name,
        "public_key": row.public_key,
        "counter": int(row.counter),
        "device_type": row.device_type,
        "backed_up": bool(row.backed_up),
        "transports": list(row.transports or []),
        "created_at": row.created_at,
    }


class CredentialStore:
    """
    Store for WebAuthn and MFA material.

    TOTP secrets (on the user and in pending setup sessions) are encrypted at
    rest and decrypted on read.
    """

    def __init__(self, db: DatabaseContext, encryption: FieldEncryption | None = None):
        self.db = db
        self._encryption = encryption

    @property
    def encryption(self) -> FieldEncryption:
        if self._encryption is None:
            self._encryption = get_field_encryption()
        return self._encryption

    # ------------------------------------------------------------------
    # WebAuthn challenges
    # ------------------------------------------------------------------

    def create_webauthn_challenge(
        self,
        user_id: int | None,
        challenge: str,
        expires_in_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS,
    ) -> str:
        """Store a challenge and return its id."""
        with self.db.transaction() as session:
            row = WebAuthnChallenge(
                user_id=user_id,
                challenge=challenge,
                expires_at=utcnow() + timedelta(seconds=expires_in_seconds),
            )
            session.add(row)
            session.flush()
            return row.id

    def get_webauthn_challenge(self, challenge_id: str) -> dict[str, Any] | None:
        """Unexpired challenge as ``{challenge, user_id}``, or None."""
        with self.db.session() as session:
            row = (
                session.query(WebAuthnChallenge)
                .filter(WebAuthnChallenge.id == challenge_id, WebAuthnChallenge.expires_at > utcnow())
                .first()
            )
        if row is None:
            return None
        return {"challenge": row.challenge, "user_id": row.user_id}

    def delete_webauthn_challenge(self, challenge_id: str) -> None:
        with self.db.transaction() as session:
            session.query(WebAuthnChallenge).filter(WebAuthnChallenge.id == challenge_id).delete(
                synchronize_session=False
            )

    # ------------------------------------------------------------------
    # WebAuthn credentials
    # ------------------------------------------------------------------

    def add_user_credential(
        self,
        credential_id: str,
        user_id: int,
        public_key: bytes,
        counter: int,
        device_type: str,
        backed_up: bool,
        transports: list[str] | None = None,
        name: str | None = None,
    ) -> None:
        with self.db.transaction() as session:
            session.add(
                UserCredential(
                    id=credential_id,
                    user_id=user_id,
                    name=name,
                    public_key=public_key,
                    counter=counter,
                    device_type=device_type,
                    backed_up=backed_up,
                    transports=list(transports or []),
                )
            )
        logger.info("webauthn_credential_added", user_id=user_id, device_type=device_type)

    def list_user_credentials(self, user_id: int) -> list[dict[str, Any]]:
        """Credentials of a user, newest first."""
        with self.db.session() as session:
            rows = (
                session.query(UserCredential)
                .filter(UserCredential.user_id == user_id)
                .order_by(UserCredential.created_at.desc())
                .all()
            )
        return [_credential_dict(row) for row in rows]

    def get_user_credential(self, credential_id: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = session.get(UserCredential, credential_id)
        return _credential_dict(row) if row is not None else None

    def update_credential_counter(self, credential_id: str, counter: int) -> bool:
        """
        Advance the signature counter after a successful assertion.

        The counter only ever moves forward; a value that is not greater than
        the stored one leaves the row unchanged.

        Returns:
            bool: True if the counter was raised
        """
        with self.db.transaction() as session:
            updated = (
                session.query(UserCredential)
                .filter(UserCredential.id == credential_id, UserCredential.counter < counter)
                .update({UserCredential.counter: counter}, synchronize_session=False)
            )

        if not updated:
            logger.warning("webauthn_counter_not_advanced", counter=counter)
        return updated > 0

    def rename_user_credential(self, credential_id: str, user_id: int, name: str) -> bool:
        with self.db.transaction() as session:
            updated = (
                session.query(UserCredential)
                .filter(UserCredential.id == credential_id, UserCredential.user_id == user_id)
                .update({UserCredential.name: name}, synchronize_session=False)
            )
        return updated > 0

    def delete_user_credential(self, credential_id: str, user_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(UserCredential)
                .filter(UserCredential.id == credential_id, UserCredential.user_id == user_id)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info("webauthn_credential_deleted", user_id=user_id)
        return deleted > 0

    def delete_all_user_credentials(self, user_id: int) -> int:
        with self.db.transaction() as session:
            deleted = (
                session.query(UserCredential)
                .filter(UserCredential.user_id == user_id)
                .delete(synchronize_session=False)
            )
        logger.info("webauthn_credentials_cleared", user_id=user_id, count=deleted)
        return deleted

    # ------------------------------------------------------------------
    # MFA sessions
    # ------------------------------------------------------------------

    def create_mfa_session(
        self,
        user_id: int,
        session_type: MfaSessionType,
        expires_in_seconds: int,
        secret: str | None = None,
    ) -> dict[str, Any]:
        """
        Open an MFA verification or enrolment session.

        Args:
            user_id: User being verified or enrolled
            session_type: ``verify`` or ``setup``
            expires_in_seconds: Session lifetime
            secret: Pending TOTP secret for ``setup`` sessions

        Returns:
            dict: The session with its plaintext secret
        """
        with self.db.transaction() as session:
            row = MfaSession(
                user_id=user_id,
                type=session_type,
                secret=self.encryption.encrypt(secret) if secret else None,
                expires_at=utcnow() + timedelta(seconds=expires_in_seconds),
            )
            session.add(row)
            session.flush()
            session_id = row.id
            expires_at = row.expires_at

        return {
            "id": session_id,
            "user_id": user_id,
            "type": session_type,
            "secret": secret,
            "expires_at": expires_at,
        }

    def get_mfa_session(self, session_id: str) -> dict[str, Any] | None:
        """Unexpired MFA session, or None."""
        with self.db.session() as session:
            row = (
                session.query(MfaSession)
                .filter(MfaSession.id == session_id, MfaSession.expires_at > utcnow())
                .first()
            )
        if row is None:
            return None
        return {
            "id": row.id,
            "user_id": row.user_id,
            "type": row.type,
            "secret": self.encryption.decrypt(row.secret) if row.secret else None,
            "expires_at": row.expires_at,
        }

    def delete_mfa_session(self, session_id: str) -> None:
        with self.db.transaction() as session:
            session.query(MfaSession).filter(MfaSession.id == session_id).delete(synchronize_session=False)

    def delete_mfa_sessions_for_user(self, user_id: int) -> int:
        with self.db.transaction() as session:
            return session.query(MfaSession).filter(MfaSession.user_id == user_id).delete(synchronize_session=False)

    # ------------------------------------------------------------------
    # MFA secret
    # ------------------------------------------------------------------

    def get_user_mfa_secret(self, user_id: int) -> str | None:
        with self.db.session() as session:
            stored = session.query(User.mfa_secret).filter(User.id == user_id).scalar()
        return self.encryption.decrypt(stored) if stored else None

    def set_user_mfa_secret(self, user_id: int, secret: str) -> None:
        with self.db.transaction() as session:
            session.query(User).filter(User.id == user_id).update(
                {User.mfa_secret: self.encryption.encrypt(secret), User.last_seen_at: utcnow()},
                synchronize_session=False,
            )
        logger.info("mfa_enrolled", user_id=user_id)

    def reset_user_mfa(self, user_id: int) -> None:
        """Clear the TOTP secret and drop any open MFA sessions."""
        with self.db.transaction() as session:
            session.query(User).filter(User.id == user_id).update(
                {User.mfa_secret: None, User.last_seen_at: utcnow()}, synchronize_session=False
            )
            session.query(MfaSession).filter(MfaSession.user_id == user_id).delete(synchronize_session=False)
        logger.info("mfa_reset", user_id=user_id)
