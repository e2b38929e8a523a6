from urllib.parse import parse_qs, urlparse
from unittest.mock import MagicMock, Mock, patch

import pytest

from bookingbot.config import settings
from bookingbot.schemas.webhook import ConnectionEvent, WebhookBody
from bookingbot.services.chatflow_service import (
    ChatflowConnection,
    build_signed_media_url,
    coerce_remote_jid,
    connection_update_from_event,
    inbound_from_body,
    normalize_chatflow_payload,
    verify_signed_media_path,
)
from bookingbot.services.errors import SendFailure
from bookingbot.services.transport import ConnectionStatus, ConnectionUpdate, InboundMessage

JID = "27820000001@s.whatsapp.net"


@pytest.fixture
def signing(monkeypatch):
    monkeypatch.setattr(settings, "media_signing_secret", "s3cret")
    monkeypatch.setattr(settings, "public_base_url", "https://bot.example.com/")
    monkeypatch.setattr(settings, "media_url_ttl_seconds", 3600)


@pytest.fixture
def gateway(tmp_path):
    return ChatflowConnection(
        api_url="https://app.chatflow.test/api/send-text",
        media_base_url="https://app.chatflow.test/api",
        token="tok",
        instance_id="inst",
        media_dir=str(tmp_path),
    )


def _mock_client(mock_client_class, status_code=200, json_data=None):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    response = Mock()
    response.status_code = status_code
    response.text = "{}"
    response.json.return_value = json_data if json_data is not None else {}
    mock_client.get.return_value = response
    return mock_client


class TestSignedMedia:
    def test_round_trip(self, signing):
        url = build_signed_media_url("outbound/abc.png")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert parsed.netloc == "bot.example.com"
        assert parsed.path == "/media/outbound/abc.png"
        assert verify_signed_media_path("outbound/abc.png", int(query["expires"][0]), query["sig"][0])

    def test_tampered_path_rejected(self, signing):
        query = parse_qs(urlparse(build_signed_media_url("outbound/abc.png")).query)
        assert not verify_signed_media_path("outbound/other.png", int(query["expires"][0]), query["sig"][0])

    def test_expired_rejected(self, signing):
        assert not verify_signed_media_path("outbound/abc.png", 1, "deadbeef")

    def test_no_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "media_signing_secret", None)
        assert build_signed_media_url("outbound/abc.png") is None


class TestPayloadNormalization:
    def test_coerce_remote_jid(self):
        assert coerce_remote_jid("+27 82 000 0001") == JID
        assert coerce_remote_jid("1203@g.us") == "1203@g.us"
        assert coerce_remote_jid({"id": 1}) is None
        assert coerce_remote_jid("abc") is None

    def test_nested_body(self):
        body = normalize_chatflow_payload({"body": {"message": "hi", "metadata": {"remoteJid": JID}}})
        assert isinstance(body, WebhookBody)
        message = inbound_from_body(body)
        assert message.text == "hi"
        assert message.user_id == "27820000001"
        assert not message.from_me

    def test_flat_payload(self):
        body = normalize_chatflow_payload({"from": "27820000001", "text": "MENU", "fromMe": True, "id": "m1"})
        message = inbound_from_body(body)
        assert message.chat_id == JID
        assert message.from_me
        assert message.message_id == "m1"

    def test_location_payload(self):
        body = normalize_chatflow_payload(
            {"remoteJid": JID, "messageType": "location", "latitude": -26.2, "longitude": 28.04}
        )
        message = inbound_from_body(body)
        assert message.has_location
        assert message.location == {"lat": -26.2, "lng": 28.04}

    def test_image_payload_has_no_text(self):
        body = normalize_chatflow_payload(
            {"body": {"messageType": "image", "message": "my proof", "metadata": {"remoteJid": JID}}}
        )
        message = inbound_from_body(body)
        assert message.has_image
        assert message.text == ""

    def test_image_detected_from_mimetype(self):
        body = normalize_chatflow_payload(
            {"body": {"messageType": "document", "mediaData": {"mimetype": "image/jpeg"}, "metadata": {"remoteJid": JID}}}
        )
        assert inbound_from_body(body).has_image

    def test_connection_event(self):
        event = normalize_chatflow_payload(
            {"event": "connection.update", "data": {"connection": "close", "statusCode": 401}}
        )
        assert isinstance(event, ConnectionEvent)
        update = connection_update_from_event(event)
        assert update.status == ConnectionStatus.CLOSED
        assert update.logged_out

    @pytest.mark.parametrize("status", ["logged_out", "LOGGEDOUT"])
    def test_logged_out_status_without_code_is_logout(self, status):
        update = connection_update_from_event(ConnectionEvent.model_validate({"connection": status}))
        assert update.status == ConnectionStatus.CLOSED
        assert update.status_code == 401
        assert update.logged_out

    def test_plain_close_without_code_is_not_logout(self):
        update = connection_update_from_event(ConnectionEvent.model_validate({"connection": "closed"}))
        assert update.status_code is None
        assert not update.logged_out

    def test_missing_jid_yields_no_message(self):
        assert inbound_from_body(normalize_chatflow_payload({"text": "hello"})) is None


class TestReceive:
    def test_emits_message(self, gateway):
        received = []
        gateway.on_message(received.append)

        result = gateway.receive({"body": {"message": "1", "metadata": {"remoteJid": JID}}})

        assert isinstance(result, InboundMessage)
        assert received == [result]

    def test_emits_connection_update(self, gateway):
        updates = []
        gateway.on_connection_update(updates.append)

        result = gateway.receive({"event": "connection.update", "qr": "2@xyz", "status": "connecting"})

        assert isinstance(result, ConnectionUpdate)
        assert updates == [ConnectionUpdate(status=ConnectionStatus.CONNECTING, qr="2@xyz")]

    def test_unrecognized_payload(self, gateway):
        assert gateway.receive({"hello": "world"}) is None


class TestOpen:
    def test_without_status_url_reports_open(self, gateway):
        updates = []
        gateway.on_connection_update(updates.append)
        gateway.open()
        assert [u.status for u in updates] == [ConnectionStatus.CONNECTING, ConnectionStatus.OPEN]

    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_reads_status_url(self, mock_client_class, gateway):
        _mock_client(mock_client_class, json_data={"state": "close", "statusCode": 401})
        gateway.status_url = "https://app.chatflow.test/api/status"
        updates = []
        gateway.on_connection_update(updates.append)

        gateway.open()

        assert updates[-1].logged_out

    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_status_check_failure_reports_closed(self, mock_client_class, gateway):
        mock_client_class.return_value.__enter__.side_effect = Exception("timeout")
        gateway.status_url = "https://app.chatflow.test/api/status"
        updates = []
        gateway.on_connection_update(updates.append)

        gateway.open()

        assert updates[-1] == ConnectionUpdate(status=ConnectionStatus.CLOSED)


class TestSendText:
    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_sends_get_with_params(self, mock_client_class, gateway):
        mock_client = _mock_client(mock_client_class)

        gateway.send_text(JID, "Hello")

        mock_client.get.assert_called_once_with(
            "https://app.chatflow.test/api/send-text",
            params={"token": "tok", "instance_id": "inst", "jid": JID, "msg": "Hello"},
        )

    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_http_error_raises(self, mock_client_class, gateway):
        _mock_client(mock_client_class, status_code=500)
        with pytest.raises(SendFailure):
            gateway.send_text(JID, "Hello")

    @patch("bookingbot.services.chatflow_service.alert_critical")
    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_network_error_raises_and_alerts(self, mock_client_class, mock_alert, gateway):
        mock_client_class.return_value.__enter__.side_effect = Exception("refused")
        with pytest.raises(SendFailure):
            gateway.send_text(JID, "Hello")
        mock_alert.assert_called_once()

    @patch("bookingbot.services.chatflow_service.alert_critical")
    def test_missing_credentials(self, mock_alert, gateway):
        gateway.token = None
        with pytest.raises(SendFailure):
            gateway.send_text(JID, "Hello")


class TestSendImage:
    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_stores_media_and_sends_signed_url(self, mock_client_class, gateway, signing, tmp_path):
        mock_client = _mock_client(mock_client_class, json_data={"success": True})

        gateway.send_image(JID, b"png", "   ")

        url, kwargs = mock_client.get.call_args[0][0], mock_client.get.call_args[1]
        assert url == "https://app.chatflow.test/api/send-image"
        assert kwargs["params"]["caption"] == " "
        assert kwargs["params"]["imageurl"].startswith("https://bot.example.com/media/outbound/")
        stored = list((tmp_path / "outbound").iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == b"png"

    @patch("bookingbot.services.chatflow_service.httpx.Client")
    def test_unsuccessful_response_raises(self, mock_client_class, gateway, signing):
        _mock_client(mock_client_class, json_data={"success": False})
        with pytest.raises(SendFailure):
            gateway.send_image(JID, b"png", "Receipt")

    def test_unsigned_media_raises(self, gateway, monkeypatch):
        monkeypatch.setattr(settings, "media_signing_secret", None)
        with pytest.raises(SendFailure):
            gateway.send_image(JID, b"png", "Receipt")
