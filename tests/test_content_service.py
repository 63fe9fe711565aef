from botrelay.services.content_service import (
    build_message_id,
    extract_content,
    get_message_type,
    get_push_name,
    is_from_me,
    parse_inbound,
)

JID = "77015556677@s.whatsapp.net"


def _event(message, **extra):
    event = {"key": {"remoteJid": JID, "fromMe": False, "id": "MSG1"}, "message": message}
    event.update(extra)
    return event


class TestExtractContent:
    def test_conversation_text(self):
        assert extract_content(_event({"conversation": "hello"})) == "hello"

    def test_extended_text(self):
        assert extract_content(_event({"extendedTextMessage": {"text": "quoted reply"}})) == "quoted reply"

    def test_list_and_button_replies(self):
        list_reply = {"listResponseMessage": {"title": "Menu option 2"}}
        button = {"buttonsResponseMessage": {"selectedButtonId": "btn-yes"}}
        assert extract_content(_event(list_reply)) == "Menu option 2"
        assert extract_content(_event({"templateButtonReplyMessage": {}, **button})) == "btn-yes"

    def test_image_with_caption_becomes_tag(self):
        event = _event({"imageMessage": {"caption": "my receipt"}, "mediaUrl": "https://cdn/x.jpg"})
        assert extract_content(event) == "imageMessage|https://cdn/x.jpg|my receipt"
        assert get_message_type(event) == "imageMessage"

    def test_audio_prefers_transcript(self):
        event = _event({"audioMessage": {"seconds": 4}, "speechToText": "call me back"})
        assert extract_content(event) == "call me back"

    def test_audio_without_transcript_uses_message_id(self):
        assert extract_content(_event({"audioMessage": {"seconds": 4}})) == "audioMessage|MSG1"

    def test_external_ad_reply_is_appended(self):
        event = _event({"conversation": "hi"}, contextInfo={"externalAdReply": {"body": "Spring sale"}})
        assert extract_content(event) == "hi\nexternalAdReplyBody|Spring sale"

    def test_unusable_payloads_give_empty_content(self):
        assert extract_content(None) == ""
        assert extract_content({"key": {}}) == ""
        assert extract_content(_event({"reactionMessage": {"text": "+1"}})) == ""
        assert get_message_type(_event({"reactionMessage": {}})) == "unknown"


class TestEventHelpers:
    def test_from_me(self):
        assert is_from_me({"key": {"fromMe": True}}) is True
        assert is_from_me(_event({"conversation": "x"})) is False
        assert is_from_me("garbage") is False

    def test_push_name(self):
        assert get_push_name({"pushName": "  Aida "}) == "Aida"
        assert get_push_name({"pushName": ""}) is None
        assert get_push_name(None) is None

    def test_message_id_fallbacks(self):
        assert build_message_id(_event({"conversation": "x"}), JID) == "MSG1"
        assert build_message_id({"messageTimestamp": 1700000000}, JID) == f"{JID}:1700000000"
        digest_id = build_message_id({"message": {"conversation": "same"}}, JID)
        assert digest_id == build_message_id({"message": {"conversation": "same"}}, JID)
        assert digest_id.startswith(f"{JID}:")

    def test_parse_inbound(self):
        inbound = parse_inbound(_event({"conversation": "hello"}, pushName="Aida"), JID)
        assert inbound.content == "hello"
        assert inbound.from_me is False
        assert inbound.push_name == "Aida"
        assert inbound.message_id == "MSG1"
        assert inbound.message_type == "conversation"
