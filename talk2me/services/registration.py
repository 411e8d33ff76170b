"""Registration Service — .Talk2me identities: register, look up, list.

Invariants:
    - Name and image are validated before any upload or write
    - An upload failure never blocks registration: the image is embedded inline instead
    - One registration write per actor in flight (dedupe key register:<actor>)
    - Not-configured identity registry reads as "not registered" / empty directory

Design Decisions:
    - The image limit is Settings.max_image_bytes, not a protocol constant
    - Record read failures degrade to (registered, profile=None): the boolean is
      the authoritative answer, the profile is decoration
"""

import base64
import logging

from talk2me.core.domain_types import (
    Address, ContractName, ENS_SUFFIX, IdentityFn, TxPurpose,
)
from talk2me.core.errors import (
    NotConfiguredError, RegistrationValidationError, Talk2MeError,
)
from talk2me.core.ledger_protocols import ContentStore
from talk2me.core.models import ActorProfile, RegistrationStatus, TxRequest
from talk2me.core.outcome import Outcome
from talk2me.services.ledger_reads import LedgerReads
from talk2me.services.transaction_tracker import TransactionTracker

logger = logging.getLogger(__name__)


def inline_content(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


class RegistrationService:
    """Identity Registry operations for the session's actors."""

    def __init__(
        self,
        reads: LedgerReads,
        tracker: TransactionTracker,
        content_store: ContentStore,
        max_image_bytes: int = 5 * 1024 * 1024,
    ):
        self.reads = reads
        self.tracker = tracker
        self.content_store = content_store
        self.max_image_bytes = max_image_bytes

    # --- Register ------------------------------------------------------------

    async def register(
        self, actor: str, name: str, image: bytes | None,
        filename: str = "profile.png", mime_type: str = "image/png", bio: str = "",
    ) -> Outcome:
        """Upload the image, then submit registerENS(name + ".Talk2me", ref, bio)."""
        actor = Address(actor)
        try:
            ens_name = self._validate(name, image)
            image_ref = await self._store_image(actor, image, filename, mime_type)
            tx_id = await self.tracker.submit(
                TxPurpose.REGISTER,
                TxRequest(
                    ContractName.IDENTITY_REGISTRY, IdentityFn.REGISTER.value,
                    (ens_name, image_ref, bio or ""),
                ),
                actor,
                dedupe_key=f"register:{actor.lower()}",
            )
        except Talk2MeError as e:
            logger.warning(
                f"Registration failed: {e.code}",
                extra={"actor": actor, "error_code": e.code},
            )
            return e.to_outcome()

        self.tracker.on_confirmed(tx_id, lambda tx: self.reads.invalidate_registration(actor))
        logger.info(
            f"Registration submitted for {ens_name}",
            extra={"actor": actor, "tx_id": tx_id},
        )
        return Outcome.success(
            "Registration submitted",
            data={"tx_id": tx_id, "ens_name": ens_name, "image_ref": image_ref},
        )

    def _validate(self, name: str, image: bytes | None) -> str:
        name = (name or "").strip()
        if not name:
            raise RegistrationValidationError("Please enter a name", "name")
        if not image:
            raise RegistrationValidationError("Please select a profile image", "image")
        if len(image) > self.max_image_bytes:
            raise RegistrationValidationError(
                f"Image must be at most {self.max_image_bytes // (1024 * 1024)}MB", "image",
            )
        return f"{name}{ENS_SUFFIX}"

    async def _store_image(
        self, actor: Address, image: bytes, filename: str, mime_type: str,
    ) -> str:
        try:
            return await self.content_store.upload(image, filename, mime_type)
        except Talk2MeError as e:
            logger.warning(
                f"Image upload unavailable ({e.code}), embedding inline",
                extra={"actor": actor, "error_code": e.code},
            )
            return inline_content(image, mime_type)

    # --- Lookup --------------------------------------------------------------

    async def check_registration(self, actor: str) -> Outcome:
        try:
            status = await self.registration_status(Address(actor))
        except Talk2MeError as e:
            return e.to_outcome()
        return Outcome.success(
            "Registered" if status.is_registered else "Not registered",
            data={
                "is_registered": status.is_registered,
                "profile": status.profile.to_dict() if status.profile else None,
            },
        )

    async def registration_status(self, actor: Address) -> RegistrationStatus:
        try:
            registered = await self.reads.is_registered(actor)
        except NotConfiguredError:
            return RegistrationStatus(False)
        if not registered:
            return RegistrationStatus(False)
        try:
            profile = await self.reads.user_record(actor)
        except Talk2MeError as e:
            logger.warning(
                f"Record unavailable for registered actor: {e.code}",
                extra={"actor": actor, "error_code": e.code},
            )
            profile = None
        return RegistrationStatus(True, profile)

    async def list_registered_users(self) -> Outcome:
        try:
            profiles = await self.registered_profiles()
        except Talk2MeError as e:
            return e.to_outcome()
        return Outcome.success(
            f"{len(profiles)} registered users",
            data=[p.to_dict() for p in profiles],
        )

    async def registered_profiles(self) -> list[ActorProfile]:
        """Active profiles of every registered address; unreadable ones are skipped."""
        try:
            addresses = await self.reads.registered_addresses()
        except NotConfiguredError:
            return []
        profiles = []
        for address in addresses:
            try:
                profile = await self.reads.user_record(address)
            except Talk2MeError as e:
                logger.debug(
                    f"Skipping unreadable record: {e.code}",
                    extra={"actor": address, "error_code": e.code},
                )
                continue
            if profile.is_active:
                profiles.append(profile)
        return profiles
