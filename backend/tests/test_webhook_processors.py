"""Provider webhook processor tests"""
import pytest
from unittest.mock import Mock, patch

from app.core.exceptions import WebhookValidationError
from app.models.enums import CreatorStatus, GenerationStatus, TransferStatus
from app.models.generation import Generation
from app.models.transfer import Transfer
from app.services.webhook_processors import (
    fal_external_id, process_fal_webhook, process_replicate_webhook, process_stripe_webhook,
    replicate_external_id, stripe_external_id
)


@pytest.fixture
def processing_generation(db_session, creator):
    generation = Generation(
        creator_id=creator.id,
        user_id="user-1",
        status=GenerationStatus.PROCESSING.value,
        prompt="studio portrait",
        replicate_prediction_id="pred_123",
    )
    db_session.add(generation)
    db_session.commit()
    db_session.refresh(generation)
    return generation


@pytest.mark.high
class TestExternalIds:
    """Test redelivery keys per provider"""

    def test_stripe_uses_event_id(self):
        assert stripe_external_id({"id": "evt_1"}) == "evt_1"

    def test_fal_includes_status(self):
        assert fal_external_id({"request_id": "job_1", "status": "COMPLETED"}) == "job_1:COMPLETED"
        assert fal_external_id({"status": "COMPLETED"}) is None

    def test_replicate_includes_status(self):
        assert replicate_external_id({"id": "pred_1", "status": "succeeded"}) == "pred_1:succeeded"


@pytest.mark.critical
class TestFalProcessor:
    """Test LoRA training callbacks"""

    def test_completed_sets_lora(self, db_session, creator):
        creator.status = CreatorStatus.TRAINING.value
        db_session.commit()

        process_fal_webhook(db_session, "training_update", {
            "request_id": "fal_job_123",
            "status": "COMPLETED",
            "output": {"lora_url": "https://fal.example.com/lora.safetensors", "trigger_word": "tcreator"},
        })

        db_session.refresh(creator)
        assert creator.status == CreatorStatus.READY.value
        assert creator.lora_url == "https://fal.example.com/lora.safetensors"
        assert creator.trigger_word == "tcreator"

    def test_completed_without_trigger_word_derives_one(self, db_session, creator):
        process_fal_webhook(db_session, "training_update", {
            "request_id": "fal_job_123",
            "status": "COMPLETED",
            "output": {"lora_url": "https://fal.example.com/lora.safetensors"},
        })
        db_session.refresh(creator)
        assert creator.trigger_word == f"creator_{creator.id[:8]}"

    def test_completed_without_lora_url_fails_creator(self, db_session, creator):
        with pytest.raises(WebhookValidationError):
            process_fal_webhook(db_session, "training_update", {"request_id": "fal_job_123", "status": "COMPLETED"})
        db_session.refresh(creator)
        assert creator.status == CreatorStatus.FAILED.value

    def test_failed_training(self, db_session, creator):
        process_fal_webhook(db_session, "training_update", {
            "request_id": "fal_job_123", "status": "FAILED", "error": "OOM"
        })
        db_session.refresh(creator)
        assert creator.status == CreatorStatus.FAILED.value

    def test_unknown_job(self, db_session):
        with pytest.raises(WebhookValidationError, match="Creator not found"):
            process_fal_webhook(db_session, "training_update", {"request_id": "nope", "status": "COMPLETED"})

    def test_missing_job_id(self, db_session):
        with pytest.raises(WebhookValidationError):
            process_fal_webhook(db_session, "training_update", {"status": "COMPLETED"})


@pytest.mark.critical
class TestReplicateProcessor:
    """Test image generation callbacks"""

    def test_succeeded_stores_and_watermarks(self, db_session, processing_generation):
        storage = Mock()
        storage.put.return_value = "https://cdn.example.com/generations/raw.jpg"

        with patch("app.services.webhook_processors._download", return_value=b"jpeg-bytes") as mock_download, \
                patch("app.services.webhook_processors.get_storage_service", return_value=storage), \
                patch("app.services.webhook_processors.watermark_service.apply",
                      return_value="https://cdn.example.com/generations/wm.jpg") as mock_apply:
            process_replicate_webhook(db_session, "prediction", {
                "id": "pred_123", "status": "succeeded", "output": ["https://replicate.delivery/out.jpg"]
            })

        mock_download.assert_called_once_with("https://replicate.delivery/out.jpg")
        storage.put.assert_called_once_with(b"jpeg-bytes", f"generations/{processing_generation.id}.jpg", "image/jpeg")
        mock_apply.assert_called_once_with("https://cdn.example.com/generations/raw.jpg", processing_generation.id)

        db_session.refresh(processing_generation)
        assert processing_generation.status == GenerationStatus.COMPLETED.value
        assert processing_generation.image_url == "https://cdn.example.com/generations/wm.jpg"

    def test_storage_failure_propagates_for_retry(self, db_session, processing_generation):
        storage = Mock()
        storage.put.side_effect = RuntimeError("bucket unavailable")
        with patch("app.services.webhook_processors._download", return_value=b"jpeg-bytes"), \
                patch("app.services.webhook_processors.get_storage_service", return_value=storage):
            with pytest.raises(RuntimeError):
                process_replicate_webhook(db_session, "prediction", {
                    "id": "pred_123", "status": "succeeded", "output": "https://replicate.delivery/out.jpg"
                })
        db_session.refresh(processing_generation)
        assert processing_generation.status == GenerationStatus.PROCESSING.value

    def test_failed_prediction(self, db_session, processing_generation):
        process_replicate_webhook(db_session, "prediction", {"id": "pred_123", "status": "failed", "error": "NSFW"})
        db_session.refresh(processing_generation)
        assert processing_generation.status == GenerationStatus.FAILED.value

    def test_succeeded_without_output(self, db_session, processing_generation):
        with pytest.raises(WebhookValidationError):
            process_replicate_webhook(db_session, "prediction", {"id": "pred_123", "status": "succeeded"})

    def test_unknown_prediction_is_noop(self, db_session):
        process_replicate_webhook(db_session, "prediction", {"id": "pred_unknown", "status": "succeeded"})


@pytest.mark.critical
class TestStripeProcessor:
    """Test Stripe event dispatch"""

    def test_account_updated_sets_onboarding(self, db_session, creator):
        creator.stripe_onboarding_complete = False
        db_session.commit()

        process_stripe_webhook(db_session, "account.updated", {
            "id": "evt_acct",
            "data": {"object": {
                "id": "acct_creator123",
                "charges_enabled": True,
                "payouts_enabled": True,
                "details_submitted": True,
            }},
        })
        db_session.refresh(creator)
        assert creator.stripe_onboarding_complete is True

    def test_account_updated_partial_capabilities(self, db_session, creator):
        process_stripe_webhook(db_session, "account.updated", {
            "data": {"object": {"id": "acct_creator123", "charges_enabled": True, "payouts_enabled": False}},
        })
        db_session.refresh(creator)
        assert creator.stripe_onboarding_complete is False

    def test_transfer_paid(self, db_session, marketplace):
        order = marketplace.make_order(status="PAID")
        transfer = Transfer(
            order_id=order.id, external_transfer_id="tr_abc", recipient_type="CREATOR",
            creator_id=marketplace.creator.id, amount_cents=100, status=TransferStatus.PROCESSING.value,
        )
        db_session.add(transfer)
        db_session.commit()

        process_stripe_webhook(db_session, "transfer.paid", {"data": {"object": {"id": "tr_abc"}}})
        db_session.refresh(transfer)
        assert transfer.status == TransferStatus.COMPLETED.value

    def test_checkout_unknown_session(self, db_session):
        with pytest.raises(WebhookValidationError, match="Order not found"):
            process_stripe_webhook(db_session, "checkout.session.completed", {
                "data": {"object": {"id": "cs_unknown", "payment_intent": "pi_1"}}
            })

    def test_checkout_without_payment_intent(self, db_session):
        with pytest.raises(WebhookValidationError):
            process_stripe_webhook(db_session, "checkout.session.completed", {
                "data": {"object": {"id": "cs_1", "payment_intent": None}}
            })

    def test_missing_data_object(self, db_session):
        with pytest.raises(WebhookValidationError):
            process_stripe_webhook(db_session, "checkout.session.completed", {"id": "evt_1"})

    def test_unhandled_type_ignored(self, db_session):
        process_stripe_webhook(db_session, "customer.created", {"data": {"object": {"id": "cus_1"}}})
