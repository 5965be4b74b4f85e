"""
Notification gateway for correction events: result emails and a chat webhook summary.

Every method is fire-and-forget: failures are logged and reported as ``False``.
"""
import logging

import requests
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


class NotificationGateway:
    TEST_RESULT = 'test-result'
    FROM_EMAIL = getattr(settings, 'DEFAULT_FROM_EMAIL', 'noreply@exams.local')
    WEBHOOK_TIMEOUT = 10

    @classmethod
    def _send_email(cls, subject, message, recipient_list):
        """Base email sending method."""
        try:
            send_mail(
                subject=subject,
                message=message,
                from_email=cls.FROM_EMAIL,
                recipient_list=recipient_list,
                fail_silently=False
            )
            logger.info(f"Email sent to {recipient_list}: {subject}")
            return True
        except Exception as e:
            logger.error(f"Email send failed to {recipient_list}: {e}")
            return False

    @classmethod
    def build_test_result_event(cls, contact, test, percentage):
        link_prefix = settings.CORRECTION.get('TEST_INVITATION_LINK', '')
        return {
            'kind': cls.TEST_RESULT,
            'recipient': contact.email,
            'data': {
                'firstname': contact.firstname,
                'lastname': contact.lastname,
                'score': percentage,
                'testName': test.title,
                'testLink': f"{link_prefix}{contact.email}",
            },
        }

    @classmethod
    def notify(cls, event_kind, payload):
        if event_kind == cls.TEST_RESULT:
            return cls.send_test_result(payload.get('recipient'), payload.get('data') or {})
        logger.warning(f"Unknown notification event '{event_kind}', nothing sent")
        return False

    @classmethod
    def send_test_result(cls, recipient, data):
        """Email the candidate their corrected score."""
        if not recipient:
            return False

        subject = f"Your results for {data.get('testName', 'your test')}"
        message = f"""
Hello {data.get('firstname', '')} {data.get('lastname', '')},

Your answers to "{data.get('testName', '')}" have been corrected.

Score: {data.get('score', 0)}%

You can review the test here: {data.get('testLink', '')}

Best regards,
Recruitment Team
"""
        return cls._send_email(subject, message, [recipient])

    @classmethod
    def send_side_channel(cls, text):
        """Post a short summary to the team chat webhook, if one is configured."""
        webhook_url = settings.CORRECTION.get('CHAT_WEBHOOK_URL', '')
        if not webhook_url:
            logger.debug("Chat webhook not configured, summary not sent")
            return False

        try:
            response = requests.post(webhook_url, json={'text': text}, timeout=cls.WEBHOOK_TIMEOUT)
            response.raise_for_status()
            logger.info("Correction summary posted to chat webhook")
            return True
        except Exception as e:
            logger.error(f"Failed to post correction summary: {e}")
            return False
