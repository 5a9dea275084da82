import base64
import json

import pytest

from dependency_bot.events import Action, ChangeEvent, DecodeError, normalize

NOTIFICATION = {
    "action": "INSERT",
    "digest": "us-east1-docker.pkg.dev/my-project/my-repo/hello-world@sha256:6ec128e26cd5",
    "tag": "us-east1-docker.pkg.dev/my-project/my-repo/hello-world:1.1",
}


def envelope(data):
    return {
        "message": {
            "data": data,
            "attributes": {},
            "messageId": "2070443601311540",
            "message_id": "2070443601311540",
            "publishTime": "2021-02-26T19:13:55.749Z",
            "publish_time": "2021-02-26T19:13:55.749Z",
        },
        "subscription": "projects/my-project/subscriptions/watcher",
    }


def test_bare_notification():
    event = normalize(json.dumps(NOTIFICATION))
    assert event == ChangeEvent(action=Action.INSERT, tag=NOTIFICATION["tag"], digest=NOTIFICATION["digest"])


def test_pubsub_envelope():
    data = base64.b64encode(json.dumps(NOTIFICATION).encode()).decode()
    event = normalize(json.dumps(envelope(data)).encode())
    assert event.action is Action.INSERT
    assert event.tag == NOTIFICATION["tag"]
    assert event.digest == NOTIFICATION["digest"]


def test_pubsub_envelope_with_raw_data():
    event = normalize(json.dumps(envelope(json.dumps(NOTIFICATION))))
    assert event.tag == NOTIFICATION["tag"]


def test_delete_without_tag():
    event = normalize(json.dumps({"action": "DELETE", "digest": NOTIFICATION["digest"]}))
    assert event == ChangeEvent(action=Action.DELETE, tag="", digest=NOTIFICATION["digest"])


def test_unknown_action():
    event = normalize(json.dumps({"action": "UPDATE", "tag": "a:b"}))
    assert event.action is Action.OTHER


@pytest.mark.parametrize("body", [
    b"not json",
    b"[]",
    json.dumps({"tag": "a:b", "digest": "sha256:00"}),
    json.dumps({"action": 1}),
    json.dumps(envelope(None)),
    json.dumps(envelope(base64.b64encode(b"garbage").decode())),
    json.dumps({"message": "nope"}),
])
def test_malformed(body):
    with pytest.raises(DecodeError):
        normalize(body)


@pytest.mark.parametrize("action", ["INSERT", "DELETE"])
@pytest.mark.parametrize("field", ["tag", "digest"])
def test_null_field_is_empty(action, field):
    body = dict(NOTIFICATION, action=action)
    body[field] = None
    event = normalize(json.dumps(body))
    assert event.action is Action.parse(action)
    assert getattr(event, field) == ""
