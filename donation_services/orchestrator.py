"""
donation_services.orchestrator -- dependency wiring for kernel services.

Responsibility:
    Creates every kernel service and selector exactly once for a session and
    wires them together, so the sequence counter, inventory service and
    campaign service are shared by intake and reconciliation.

Architecture position:
    Services.  The only place kernel services are constructed and composed;
    DonationPortal builds one orchestrator per transaction.

Usage:
    with session_scope() as session:
        kernel = DonationOrchestrator(session, config, clock)
        kernel.intake.create_donation(request, actor_id)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from donation_config.bridges import build_intake_policy
from donation_config.schema import PortalConfig
from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.selectors.campaign_selector import CampaignSelector
from donation_kernel.selectors.donation_selector import DonationSelector
from donation_kernel.selectors.inventory_selector import InventorySelector
from donation_kernel.services.campaign_service import CampaignService
from donation_kernel.services.intake_service import IntakeService
from donation_kernel.services.inventory_service import InventoryService
from donation_kernel.services.reconciliation_service import ReconciliationService
from donation_kernel.services.reference_issuer import ReferenceIssuer
from donation_kernel.services.sequence_service import SequenceService


class DonationOrchestrator:
    """Per-session factory for kernel services.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
    """

    def __init__(
        self,
        session: Session,
        config: PortalConfig,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()

        # Order matters: later services take earlier ones
        self.sequences = SequenceService(session)
        self.campaigns = CampaignService(session, self.clock)
        self.inventory = InventoryService(
            session,
            self.clock,
            default_location=config.inventory.default_location,
            default_threshold=config.inventory.default_threshold,
            sequence_service=self.sequences,
        )
        self.issuer = ReferenceIssuer(self.clock)
        self.intake = IntakeService(
            session,
            self.clock,
            issuer=self.issuer,
            inventory=self.inventory,
            campaigns=self.campaigns,
            policy=build_intake_policy(config),
        )
        self.reconciliation = ReconciliationService(session, self.clock, self.campaigns)

        # Read side
        self.donation_reader = DonationSelector(session)
        self.inventory_reader = InventorySelector(session)
        self.campaign_reader = CampaignSelector(session)
