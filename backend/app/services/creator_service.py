"""Creator service - LoRA training lifecycle"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from app.models.creator import Creator
from app.models.enums import CreatorStatus

logger = logging.getLogger(__name__)


def derive_trigger_word(creator_id: str) -> str:
    """Fallback trigger word when the trainer does not return one"""
    return f"creator_{creator_id[:8]}"


def get_creator_by_job_id(db: Session, job_id: str) -> Optional[Creator]:
    return db.query(Creator).filter(Creator.fal_job_id == job_id).first()


def update_creator_lora_status(
    db: Session,
    creator: Creator,
    status: CreatorStatus,
    lora_url: Optional[str] = None,
    trigger_word: Optional[str] = None
) -> Creator:
    """Record a training outcome on the creator"""
    old_status = creator.status
    creator.status = status.value
    if lora_url is not None:
        creator.lora_url = lora_url
    if trigger_word is not None:
        creator.trigger_word = trigger_word
    db.commit()
    db.refresh(creator)
    logger.info(f"Creator {creator.id} LoRA status {old_status} -> {creator.status}")
    return creator
