import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, urlsplit

from syncgate.adapters.phone import twilio, twiml
from syncgate.config.settings import Settings


def test_escape_xml_handles_all_special_characters():
    assert twiml.escape_xml("Tom & Jerry's <show> \"live\"") == "Tom &amp; Jerry&apos;s &lt;show&gt; &quot;live&quot;"
    assert twiml.escape_xml("&amp;") == "&amp;amp;"


def test_resolve_voice_defaults():
    assert twiml.resolve_voice(None) == twiml.DEFAULT_VOICE
    assert twiml.resolve_voice("undefined") == twiml.DEFAULT_VOICE
    assert twiml.resolve_voice(" Polly.Matthew ") == "Polly.Matthew"


def test_prompt_and_listen_is_well_formed_with_hostile_text():
    doc = twiml.prompt_and_listen(
        "Ready? <Hangup/> & go",
        action="https://app.example.com/api/phone/twiml?handler=respond&voice=Polly.Joanna-Neural",
        voice="Polly.Joanna-Neural",
        closing="Bye for now",
    )
    root = ET.fromstring(doc.encode("utf-8"))
    assert root.tag == "Response"
    assert [child.tag for child in root] == ["Say", "Gather", "Say"]
    assert root[0].text == "Ready? <Hangup/> & go"
    assert root.find("Hangup") is None
    gather = root[1]
    assert gather.get("input") == "speech"
    assert gather.get("action").endswith("handler=respond&voice=Polly.Joanna-Neural")
    assert gather.find("Pause").get("length") == "2"


def test_respond_url_carries_voice_and_context():
    settings = Settings(app_url="https://app.example.com/")
    url = twilio.respond_url(settings, "Polly.Matthew", context="wake-up")
    parts = urlsplit(url)
    assert parts.path == "/api/phone/twiml"
    assert parse_qs(parts.query) == {"handler": ["respond"], "voice": ["Polly.Matthew"], "context": ["wake-up"]}


def test_signature_matches_any_candidate_url():
    params = {"CallSid": "CA123", "SpeechResult": "hello"}
    good = "https://app.example.com/api/phone/twiml?handler=respond"
    signature = twilio.compute_signature("token", good, params)

    assert twilio.verify_signature("token", signature, ["https://proxy.internal/x", good], params) is True
    assert twilio.verify_signature("token", signature, ["https://proxy.internal/x"], params) is False
    assert twilio.verify_signature("token", "", [good], params) is False
    assert twilio.verify_signature("other", signature, [good], params) is False


def test_create_call_request_shape():
    settings = Settings(
        twilio_account_sid="AC1",
        twilio_auth_token="tok",
        twilio_phone_number="+15550000000",
        app_url="https://app.example.com",
    )
    upstream = twilio.build_create_call(settings, to="+15551112222", twiml="<Response/>")
    fields = parse_qs(upstream.body.decode("utf-8"))

    assert upstream.url == "https://api.twilio.com/2010-04-01/Accounts/AC1/Calls.json"
    assert upstream.headers["Authorization"] == twilio.basic_auth_header("AC1", "tok")
    assert fields["To"] == ["+15551112222"]
    assert fields["From"] == ["+15550000000"]
    assert fields["Twiml"] == ["<Response/>"]
    assert fields["StatusCallback"] == ["https://app.example.com/api/phone/twiml?handler=status-callback"]
