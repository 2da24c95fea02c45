from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, HTTPException, status
from careops.core.onboarding import OnboardingStepMachine, UnknownFieldError, WizardRegistry
from careops.schemas.auth import SessionContext
from careops.routes.deps import get_gateway, get_wizards, get_workspace_session

router = APIRouter()


def _response(machine: OnboardingStepMachine, success: bool = True) -> dict:
    return {
        "success": success,
        "wizard": machine.to_dict(),
        "notifications": [n.model_dump(mode="json") for n in machine.notifier.drain()]
    }


async def get_wizard(
    session: SessionContext = Depends(get_workspace_session),
    gateway=Depends(get_gateway),
    wizards: WizardRegistry = Depends(get_wizards)
) -> OnboardingStepMachine:
    machine = wizards.get(session, gateway)
    if not machine.loaded:
        await machine.load()
    return machine


@router.get("")
async def get_onboarding(machine: OnboardingStepMachine = Depends(get_wizard)):
    """Resume the wizard at the workspace's stored step"""
    return _response(machine, machine.loaded)


@router.post("/fields")
async def update_fields(
    fields: Dict[str, Any] = Body(...),
    machine: OnboardingStepMachine = Depends(get_wizard)
):
    """Edit the current step's form"""
    try:
        machine.update_fields(**fields)
    except UnknownFieldError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _response(machine)


@router.post("/advance")
async def save_and_advance(
    machine: OnboardingStepMachine = Depends(get_wizard),
    wizards: WizardRegistry = Depends(get_wizards)
):
    """Run the current step's action, then move on"""
    success = await machine.save_and_advance()
    response = _response(machine, success)
    if machine.finished:
        wizards.discard(machine.session.user_id)
    return response


@router.post("/skip")
async def skip_step(machine: OnboardingStepMachine = Depends(get_wizard)):
    return _response(machine, await machine.skip())


@router.post("/back")
async def previous_step(machine: OnboardingStepMachine = Depends(get_wizard)):
    return _response(machine, machine.back())


@router.post("/steps/{step_id}")
async def go_to_step(step_id: int, machine: OnboardingStepMachine = Depends(get_wizard)):
    """Jump to a completed or current step"""
    return _response(machine, machine.go_to(step_id))
