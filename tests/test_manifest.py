import logging

from skill_devkit.manifest import MISSING, ClassManifest, get_poll_interval, iterate_functions

from conftest import make_manifest


def test_from_dict_marks_missing_secrets():
    manifest = make_manifest(
        config={
            "module": "org.thingpedia.config.form",
            "params": {"api_key": "$?", "region": "us"},
        },
        annotations={"version": 3},
    )

    assert manifest.config.has_missing_keys()
    assert manifest.config.args()["api_key"] is MISSING
    assert manifest.version == 3


def test_poll_interval_defaults_to_non_deterministic():
    manifest = make_manifest(
        queries={
            "fast": {"annotations": {"poll_interval": 5000}},
            "random": {},
        }
    )

    assert get_poll_interval(manifest.queries["fast"]) == 5000
    assert get_poll_interval(manifest.queries["random"]) == -1


def test_iterate_functions_visits_parents_once(caplog):
    parent = make_manifest("com.example.parent", queries={"shared": {}, "inherited": {}})
    child = make_manifest(
        "com.example.child",
        queries={"shared": {}, "own": {}},
        extends=["com.example.parent", "com.example.missing"],
    )

    with caplog.at_level(logging.WARNING):
        names = [name for name, _ in iterate_functions(child, "queries", {"com.example.parent": parent})]

    assert names == ["shared", "own", "inherited"]
    assert "com.example.missing" in caplog.text


def test_with_annotations_returns_copy():
    manifest = ClassManifest.from_dict({"kind": "com.example", "annotations": {"version": 7}})

    updated = manifest.with_annotations(version=0)

    assert updated.version == 0
    assert manifest.version == 7
