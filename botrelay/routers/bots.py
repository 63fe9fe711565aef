"""Configuration API for the bot families of one instance."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from botrelay.config import settings
from botrelay.database import get_db
from botrelay.logging_config import get_logger
from botrelay.models import Instance
from botrelay.schemas.bot import (
    BotCreate,
    BotResponse,
    BotUpdate,
    ChangeStatusRequest,
    ChangeStatusResponse,
    IgnoreJidRequest,
    IgnoreJidResponse,
    SessionResponse,
    SettingsResponse,
    SettingsUpdate,
)
from botrelay.services import bot_config_service
from botrelay.services.bot_config_service import BotConfigError, NotFoundError
from botrelay.services.session_service import fetch_sessions

logger = get_logger("bots_router")

router = APIRouter(prefix="/bots/{family}/{instance_name}", tags=["bots"])


def _load_instance(db: Session, family: str, instance_name: str) -> Instance:
    if family not in settings.family_names:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown bot family: {family}")
    try:
        return bot_config_service.get_instance_by_name(db, instance_name)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _raise_for(db: Session, error: BotConfigError) -> None:
    db.rollback()
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    logger.warning(f"Configuration rejected: {error}")
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error


@router.post("", response_model=BotResponse, status_code=status.HTTP_201_CREATED)
def create_bot(family: str, instance_name: str, payload: BotCreate, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        bot = bot_config_service.create_bot(db, instance, family, payload.model_dump())
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    db.refresh(bot)
    return bot


@router.get("", response_model=list[BotResponse])
def list_bots(family: str, instance_name: str, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    return bot_config_service.find_bots(db, instance, family)


@router.get("/settings", response_model=SettingsResponse)
def get_settings(family: str, instance_name: str, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    row = bot_config_service.fetch_settings(db, instance, family)
    if row is None:
        return SettingsResponse(family=family)
    return row


@router.put("/settings", response_model=SettingsResponse)
def update_settings(family: str, instance_name: str, payload: SettingsUpdate, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        row = bot_config_service.set_settings(db, instance, family, payload.model_dump(exclude_unset=True))
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    db.refresh(row)
    return row


@router.post("/ignore-jid", response_model=IgnoreJidResponse)
def ignore_jid(family: str, instance_name: str, payload: IgnoreJidRequest, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        ignored = bot_config_service.ignore_jid(db, instance, family, payload.remote_jid, payload.action)
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    return IgnoreJidResponse(ignored_jids=ignored)


@router.post("/status", response_model=ChangeStatusResponse)
def change_status(family: str, instance_name: str, payload: ChangeStatusRequest, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        count = bot_config_service.change_session_status(db, instance, family, payload.remote_jid, payload.status)
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    return ChangeStatusResponse(remote_jid=payload.remote_jid, status=payload.status, sessions=count)


@router.get("/sessions", response_model=list[SessionResponse])
def list_sessions(
    family: str,
    instance_name: str,
    bot_id: Optional[UUID] = None,
    remote_jid: Optional[str] = None,
    db: Session = Depends(get_db),
):
    instance = _load_instance(db, family, instance_name)
    return fetch_sessions(db, instance.id, family, bot_id=bot_id, remote_jid=remote_jid)


@router.get("/{bot_id}", response_model=BotResponse)
def get_bot(family: str, instance_name: str, bot_id: UUID, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        return bot_config_service.fetch_bot(db, instance, family, bot_id)
    except BotConfigError as e:
        _raise_for(db, e)


@router.put("/{bot_id}", response_model=BotResponse)
def update_bot(family: str, instance_name: str, bot_id: UUID, payload: BotUpdate, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        bot = bot_config_service.update_bot(db, instance, family, bot_id, payload.model_dump(exclude_unset=True))
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    db.refresh(bot)
    return bot


@router.delete("/{bot_id}")
def delete_bot(family: str, instance_name: str, bot_id: UUID, db: Session = Depends(get_db)):
    instance = _load_instance(db, family, instance_name)
    try:
        bot_config_service.delete_bot(db, instance, family, bot_id)
    except BotConfigError as e:
        _raise_for(db, e)
    db.commit()
    return {"bot": {"id": str(bot_id)}}
