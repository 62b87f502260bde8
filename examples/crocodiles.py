"""The crocodiles scenario written in Python instead of YAML.

Python scenarios can use any predicate or extractor, not only the
declarative forms.  Run it with:

    loadstage run examples/crocodiles.py
    loadstage run examples/crocodiles.py --stage 10s:5 --stage 20s:5 --stage 5s:0
"""

from __future__ import annotations

from loadstage import (
    Check,
    Group,
    Scenario,
    Stage,
    StagesPattern,
    Step,
    duration_below,
    json_has,
    status_is,
)

OK = Check("status is 200", status_is(200))

public = Group(
    "Public endpoints",
    [
        Step(
            "crocodile 1",
            "/public/crocodiles/1/",
            checks=[OK, Check("has a name", json_has("name"))],
            think_time=1.0,
        ),
        Step("crocodiles", "/public/crocodiles/", checks=[OK], think_time=1.0),
    ],
)

private = Group(
    "Private endpoints",
    [
        Step(
            "login",
            "/auth/token/login/",
            method="POST",
            data={"username": "test", "password": "test"},
            checks=[
                Check("login status is 200", status_is(200)),
                Check("login under 500ms", duration_below(500)),
            ],
            extract={"token": "access"},
        ),
        Step(
            "my crocodiles",
            "/my/crocodiles/",
            headers={"Authorization": "Bearer ${token}"},
            checks=[OK],
            extract={"first_crocodile": lambda r: (r.json() or [{}])[0].get("id")},
            think_time=(0.5, 1.5),
        ),
    ],
)

scenario = Scenario(
    name="Crocodiles (Python)",
    base_url="https://test.k6.io",
    pattern=StagesPattern(
        [
            Stage(duration=30.0, target=20),
            Stage(duration=60.0, target=20),
            Stage(duration=10.0, target=0),
        ]
    ),
    groups=[public, private],
)
