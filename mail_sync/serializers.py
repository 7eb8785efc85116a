"""Request serializers for the mail_sync API.

Field names follow the camelCase documents the web UI already uses.
"""

from rest_framework import serializers

from .enums import Protocol


class RecipientsField(serializers.Field):
    """Accepts one address, a comma-separated string or a list of addresses."""

    default_error_messages = {
        "invalid": "Expected an address or a list of addresses.",
        "empty": "At least one recipient is required.",
    }

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.split(",")
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            self.fail("invalid")
        recipients = [item.strip() for item in data if item.strip()]
        if not recipients:
            self.fail("empty")
        return recipients

    def to_representation(self, value):
        return ", ".join(value)


class AccountScopedSerializer(serializers.Serializer):
    userId = serializers.CharField(required=False, allow_blank=True)
    accountId = serializers.CharField()


class SyncRequestSerializer(AccountScopedSerializer):
    pass


class AttachmentSerializer(serializers.Serializer):
    filename = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(required=False, allow_blank=True)
    content = serializers.CharField()
    contentType = serializers.CharField(required=False, allow_blank=True)
    type = serializers.CharField(required=False, allow_blank=True)


class SendRequestSerializer(AccountScopedSerializer):
    to = RecipientsField()
    subject = serializers.CharField(required=False, allow_blank=True, default="")
    content = serializers.CharField(
        required=False, allow_blank=True, default="", trim_whitespace=False
    )
    attachments = AttachmentSerializer(many=True, required=False)
    emailId = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class SelectRequestSerializer(serializers.Serializer):
    emailIds = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    selected = serializers.BooleanField()


class AccountSerializer(serializers.Serializer):
    """Writable account fields; ``password`` is write-only and encrypted."""

    displayName = serializers.CharField(
        source="display_name", required=False, allow_blank=True
    )
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    imapHost = serializers.CharField(source="imap_host", required=False, allow_blank=True)
    imapPort = serializers.IntegerField(
        source="imap_port", required=False, min_value=1, max_value=65535
    )
    imapUseTLS = serializers.BooleanField(source="imap_use_tls", required=False)
    smtpHost = serializers.CharField(source="smtp_host", required=False, allow_blank=True)
    smtpPort = serializers.IntegerField(
        source="smtp_port", required=False, min_value=1, max_value=65535
    )
    smtpUseTLS = serializers.BooleanField(source="smtp_use_tls", required=False)


class TestConnectionSerializer(serializers.Serializer):
    protocol = serializers.ChoiceField(choices=Protocol.choices)
    host = serializers.CharField()
    port = serializers.IntegerField(min_value=1, max_value=65535)
    useTLS = serializers.BooleanField(default=True)
    username = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)
