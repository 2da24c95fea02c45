"""
Onboarding wizard for a new workspace.

Eight fixed steps. Each step kind is its own class carrying its form state, the
field that must be filled before it can advance, and the single action that
runs when it does. The machine owns the current step, persists progress on the
workspace record and turns gateway failures into notifications.

Progress rules:
  - save_and_advance runs the step action first; the step counter only moves
    once the action succeeded.
  - skip moves forward on steps that allow it, with no data action.
  - back and go_to are local navigation and never persist.
  - the persisted counter is best effort; if that write fails the wizard still
    moves forward locally and a later resume starts from the last stored value.
"""

import logging
import time
from collections import OrderedDict
from enum import Enum
from typing import ClassVar, Dict, NamedTuple, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from careops.models.workspace import WorkspaceStatus
from careops.schemas.auth import SessionContext
from careops.schemas.inventory import InventoryItemCreate
from careops.schemas.service import ServiceCreate
from careops.schemas.workspace import WorkspaceDetails
from careops.services.gateway import DataGateway, GatewayError
from careops.services.notifications import Notifier
from careops.utils.slug import slugify

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    WORKSPACE = "workspace"
    INFORMATIONAL = "informational"
    SERVICE = "service"
    INVENTORY = "inventory"
    ACTIVATE = "activate"


class StepDefinition(NamedTuple):
    id: int
    title: str
    description: str


STEP_DEFINITIONS = (
    StepDefinition(1, "Workspace", "Set up your business details"),
    StepDefinition(2, "Email", "Connect email integration"),
    StepDefinition(3, "Contact Form", "Create a public contact form"),
    StepDefinition(4, "Bookings", "Set up services & availability"),
    StepDefinition(5, "Forms", "Create post-booking forms"),
    StepDefinition(6, "Inventory", "Track resources & stock"),
    StepDefinition(7, "Staff", "Invite team members"),
    StepDefinition(8, "Activate", "Go live!"),
)

FIRST_STEP = STEP_DEFINITIONS[0].id
LAST_STEP = STEP_DEFINITIONS[-1].id


class UnknownFieldError(ValueError):
    pass


# ─────────────────────────────────────────
# FORM STATE (raw input values, as typed)
# ─────────────────────────────────────────

class WorkspaceForm(BaseModel):
    name: str = ""
    address: str = ""
    timezone: str = "UTC"
    contact_email: str = ""


class ServiceForm(BaseModel):
    name: str = ""
    duration: str = "60"
    price: str = ""
    location: str = ""


class InventoryForm(BaseModel):
    name: str = ""
    quantity: str = "10"
    low_stock_threshold: str = "5"
    unit: str = ""


# ─────────────────────────────────────────
# STEP VARIANTS
# ─────────────────────────────────────────

class OnboardingStep:
    kind: ClassVar[StepKind]
    form_class: ClassVar[Optional[Type[BaseModel]]] = None
    required_field: ClassVar[Optional[str]] = None
    can_skip: ClassVar[bool] = True
    success_title: ClassVar[Optional[str]] = None
    success_description: ClassVar[Optional[str]] = None
    failure_title: ClassVar[str] = "Could not save this step"

    def __init__(self, definition: StepDefinition):
        self.definition = definition
        self.form = self.form_class() if self.form_class else None

    @property
    def id(self) -> int:
        return self.definition.id

    @property
    def title(self) -> str:
        return self.definition.title

    def can_advance(self) -> bool:
        if self.required_field is None:
            return True
        return bool(getattr(self.form, self.required_field).strip())

    def update(self, **fields) -> None:
        if self.form is None:
            if fields:
                raise UnknownFieldError(f"Step '{self.title}' has no fields")
            return
        known = type(self.form).model_fields
        for key in fields:
            if key not in known:
                raise UnknownFieldError(f"Unknown field '{key}' for step '{self.title}'")
        for key, value in fields.items():
            setattr(self.form, key, "" if value is None else str(value))

    def reset(self) -> None:
        if self.form_class:
            self.form = self.form_class()

    async def advance(self, gateway: DataGateway, workspace_id: int) -> None:
        """Run this step's action. Raises GatewayError or ValidationError on failure."""
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.definition.description,
            "kind": self.kind.value,
            "can_skip": self.can_skip,
            "required_field": self.required_field,
            "fields": self.form.model_dump() if self.form else None
        }


class WorkspaceStep(OnboardingStep):
    kind = StepKind.WORKSPACE
    form_class = WorkspaceForm
    required_field = "name"
    can_skip = False
    success_title = "Workspace saved!"
    failure_title = "Could not save workspace"

    async def advance(self, gateway, workspace_id):
        # Update by id, so saving again is harmless
        details = WorkspaceDetails(
            name=self.form.name,
            address=self.form.address,
            timezone=self.form.timezone,
            contact_email=self.form.contact_email or None,
            slug=slugify(self.form.name)
        )
        await gateway.update_workspace(workspace_id, details.model_dump())


class InformationalStep(OnboardingStep):
    kind = StepKind.INFORMATIONAL


class ServiceStep(OnboardingStep):
    kind = StepKind.SERVICE
    form_class = ServiceForm
    required_field = "name"
    success_title = "Service created!"
    failure_title = "Could not create service"

    async def advance(self, gateway, workspace_id):
        # Inserts every time; revisiting the step and saving again adds another service
        service = ServiceCreate(
            workspace_id=workspace_id,
            name=self.form.name,
            duration=self.form.duration,
            price=self.form.price or None,
            location=self.form.location,
            slug=slugify(self.form.name)
        )
        await gateway.insert_service(service)
        self.reset()


class InventoryStep(OnboardingStep):
    kind = StepKind.INVENTORY
    form_class = InventoryForm
    required_field = "name"
    success_title = "Inventory item added!"
    failure_title = "Could not add inventory item"

    async def advance(self, gateway, workspace_id):
        item = InventoryItemCreate(
            workspace_id=workspace_id,
            name=self.form.name,
            quantity=self.form.quantity,
            low_stock_threshold=self.form.low_stock_threshold,
            unit=self.form.unit or None
        )
        await gateway.insert_inventory_item(item)
        self.reset()


class ActivateStep(OnboardingStep):
    kind = StepKind.ACTIVATE
    can_skip = False
    success_title = "Workspace activated!"
    success_description = "Your business is now live!"
    failure_title = "Could not activate workspace"

    async def advance(self, gateway, workspace_id):
        await gateway.update_workspace(workspace_id, {"status": WorkspaceStatus.ACTIVE})


STEP_KINDS: Dict[int, Type[OnboardingStep]] = {
    1: WorkspaceStep,
    2: InformationalStep,
    3: InformationalStep,
    4: ServiceStep,
    5: InformationalStep,
    6: InventoryStep,
    7: InformationalStep,
    8: ActivateStep,
}


def _describe_validation(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in error.errors()
    )


# ─────────────────────────────────────────
# STEP MACHINE
# ─────────────────────────────────────────

class OnboardingStepMachine:
    completion_path = "/dashboard"

    def __init__(self, session: SessionContext, gateway: DataGateway, notifier: Optional[Notifier] = None):
        self.session = session
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.steps: Dict[int, OnboardingStep] = {
            definition.id: STEP_KINDS[definition.id](definition) for definition in STEP_DEFINITIONS
        }
        self.current_step = FIRST_STEP
        self.loading = False
        self.loaded = False
        self.activated = False
        self.finished = False

    @property
    def workspace_id(self) -> Optional[int]:
        return self.session.workspace_id

    @property
    def current(self) -> OnboardingStep:
        return self.steps[self.current_step]

    async def load(self) -> bool:
        """Resume from the workspace's stored step and restore its fields"""
        if not self.workspace_id:
            return False
        try:
            workspace = await self.gateway.get_workspace(self.workspace_id)
        except GatewayError as e:
            self.notifier.error("Could not load onboarding progress", e.message)
            return False

        if workspace:
            stored = workspace.onboarding_step or FIRST_STEP
            self.current_step = min(max(stored, FIRST_STEP), LAST_STEP)
            self.steps[1].form = WorkspaceForm(
                name=workspace.name or "",
                address=workspace.address or "",
                timezone=workspace.timezone or "UTC",
                contact_email=workspace.contact_email or ""
            )
            self.activated = workspace.status == WorkspaceStatus.ACTIVE
        self.loaded = True
        logger.info("Onboarding for workspace %s resumed at step %s", self.workspace_id, self.current_step)
        return True

    # ───────────── Navigation ─────────────

    def is_locked(self, step_id: int) -> bool:
        return self.current_step < step_id

    def step_state(self, step_id: int) -> str:
        if self.current_step > step_id:
            return "complete"
        if self.current_step == step_id:
            return "current"
        return "locked"

    def go_to(self, step_id: int) -> bool:
        """Jump to an unlocked step indicator. Local only."""
        if step_id not in self.steps or self.is_locked(step_id):
            return False
        self.current_step = step_id
        return True

    def back(self) -> bool:
        if self.current_step <= FIRST_STEP:
            return False
        self.current_step -= 1
        return True

    def update_fields(self, **fields) -> None:
        self.current.update(**fields)

    # ───────────── Transitions ─────────────

    def can_advance(self) -> bool:
        return bool(self.workspace_id) and not self.loading and self.current.can_advance()

    async def save_and_advance(self) -> bool:
        if not self.can_advance():
            return False

        step = self.current
        self.loading = True
        try:
            try:
                await step.advance(self.gateway, self.workspace_id)
            except GatewayError as e:
                logger.error("Step %s (%s) failed for workspace %s: %s", step.id, step.title, self.workspace_id, e)
                self.notifier.error(step.failure_title, e.message)
                return False
            except ValidationError as e:
                self.notifier.error(step.failure_title, _describe_validation(e))
                return False

            if step.success_title:
                self.notifier.notify(step.success_title, step.success_description)

            if step.kind == StepKind.ACTIVATE:
                self.activated = True
                self.finished = True
                logger.info("Workspace %s activated", self.workspace_id)
                return True

            await self._move_forward()
            return True
        finally:
            self.loading = False

    async def skip(self) -> bool:
        if self.loading or not self.current.can_skip:
            return False
        await self._move_forward()
        return True

    async def _move_forward(self) -> None:
        if self.current_step >= LAST_STEP:
            return
        self.current_step += 1
        await self._persist_step(self.current_step)

    async def _persist_step(self, step_id: int) -> None:
        if not self.workspace_id:
            return
        try:
            await self.gateway.update_workspace(self.workspace_id, {"onboarding_step": step_id})
        except GatewayError as e:
            # Local progress stands; a resume falls back to the last stored step
            logger.warning("Could not store onboarding step %s for workspace %s: %s", step_id, self.workspace_id, e)

    def to_dict(self) -> dict:
        return {
            "current_step": self.current_step,
            "loading": self.loading,
            "activated": self.activated,
            "finished": self.finished,
            "redirect_to": self.completion_path if self.finished else None,
            "can_advance": self.can_advance(),
            "step": self.current.to_dict(),
            "steps": [
                {"id": s.id, "title": s.title, "state": self.step_state(s.id)}
                for s in self.steps.values()
            ]
        }


class WizardRegistry:
    """One live step machine per signed-in user, kept between requests.

    Bounded two ways: a machine untouched for ``idle_seconds`` is dropped and
    rebuilt from the stored step on the next request, and past ``max_size``
    the least recently used machine is evicted.
    """

    def __init__(self, max_size: int = 1000, idle_seconds: float = 1800.0, clock=time.monotonic):
        self._machines: "OrderedDict[int, Tuple[OnboardingStepMachine, float]]" = OrderedDict()
        self.max_size = max_size
        self.idle_seconds = idle_seconds
        self._clock = clock

    def get(self, session: SessionContext, gateway: DataGateway) -> OnboardingStepMachine:
        now = self._clock()
        self._expire(now)
        entry = self._machines.pop(session.user_id, None)
        machine = entry[0] if entry else None
        if machine is None or machine.workspace_id != session.workspace_id:
            machine = OnboardingStepMachine(session, gateway)
        self._machines[session.user_id] = (machine, now)
        while len(self._machines) > self.max_size:
            user_id, _ = self._machines.popitem(last=False)
            logger.info("Evicted onboarding wizard for user %s", user_id)
        return machine

    def _expire(self, now: float) -> None:
        # Oldest first, so stop at the first fresh entry
        while self._machines:
            user_id, (_, last_used) = next(iter(self._machines.items()))
            if now - last_used < self.idle_seconds:
                break
            del self._machines[user_id]

    def discard(self, user_id: int) -> None:
        self._machines.pop(user_id, None)

    def __len__(self):
        return len(self._machines)
