"""
Tests for itil_config.decoder module.

Tests decoding and validation including:
- Required fields and defaults
- Type coercion for every kind
- Aggregation of all field errors in one pass
- Extension sections (declarative and callable)
- Round-trip through encode()
"""

from __future__ import annotations

import pytest

from itil_config.decoder import (
    SectionRegistry,
    coerce,
    decode,
    decode_section,
    default_registry,
    get_section_decoder,
    register_section,
)
from itil_config.exceptions import (
    ConfigError,
    ConfigValidationError,
    FieldError,
    InvalidTypeError,
    MissingFieldError,
)
from itil_config.schema import (
    CORE_SCHEMA,
    DATABASE_SECTION,
    Field,
    Kind,
    Schema,
    Section,
)
from itil_config.settings import Config, encode


@pytest.fixture
def valid_tree() -> dict:
    return {
        "server": {"ip": "127.0.0.1", "port": 3000},
        "database": {"url": "postgres://localhost/itil"},
    }


class TestRequiredFields:
    """Tests for missing-field reporting."""

    @pytest.mark.parametrize(
        "missing",
        [("server", "ip"), ("server", "port"), ("database", "url")],
    )
    def test_each_required_field_reports_missing(self, valid_tree, registry, missing):
        """Test that dropping any required field yields exactly that error."""
        section, name = missing
        del valid_tree[section][name]

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(valid_tree, registry=registry)

        errors = exc_info.value.errors
        assert len(errors) == 1
        assert isinstance(errors[0], MissingFieldError)
        assert errors[0].path == missing
        assert errors[0].dotted == ".".join(missing)

    def test_empty_tree_reports_every_field(self, registry):
        """Test that all missing fields are reported together."""
        with pytest.raises(ConfigValidationError) as exc_info:
            decode({}, registry=registry)

        assert exc_info.value.paths == ["server.ip", "server.port", "database.url"]
        assert all(isinstance(e, MissingFieldError) for e in exc_info.value.errors)

    def test_default_fills_absent_field(self):
        """Test that a declared default is used when absent."""
        section = Section("mailer", fields=[Field("port", Kind.INTEGER, default=25)])

        assert decode_section({}, section) == {"port": 25}

    def test_optional_field_is_none(self):
        """Test that an optional field without default decodes to None."""
        section = Section("mailer", fields=[Field("relay", required=False)])

        assert decode_section({}, section)["relay"] is None


class TestCoercion:
    """Tests for scalar coercion."""

    @pytest.mark.parametrize(
        ("kind", "raw", "expected"),
        [
            (Kind.INTEGER, "8080", 8080),
            (Kind.INTEGER, 8080, 8080),
            (Kind.INTEGER, " 42 ", 42),
            (Kind.FLOAT, "0.5", 0.5),
            (Kind.FLOAT, 2, 2.0),
            (Kind.BOOLEAN, "TRUE", True),
            (Kind.BOOLEAN, "off", False),
            (Kind.BOOLEAN, "1", True),
            (Kind.BOOLEAN, False, False),
            (Kind.STRING, "abc", "abc"),
            (Kind.STRING, 12, "12"),
            (Kind.URL, "postgres://user:pw@db:5432/itil", "postgres://user:pw@db:5432/itil"),
            (Kind.URL, "sqlite:///tmp/itil.db", "sqlite:///tmp/itil.db"),
            (Kind.URL, "file:/etc/itil/dsn", "file:/etc/itil/dsn"),
            (Kind.IP_ADDRESS, "0.0.0.0", "0.0.0.0"),
            (Kind.IP_ADDRESS, "::1", "::1"),
            (Kind.LIST, "a, b,,c", ["a", "b", "c"]),
            (Kind.LIST, ["x"], ["x"]),
        ],
    )
    def test_accepted_values(self, kind, raw, expected):
        """Test that valid raw values coerce to the declared kind."""
        assert coerce(raw, Field("f", kind), ("s", "f")) == expected

    @pytest.mark.parametrize(
        ("kind", "raw"),
        [
            (Kind.INTEGER, "notanumber"),
            (Kind.INTEGER, True),
            (Kind.INTEGER, 1.5),
            (Kind.INTEGER, "1.0"),
            (Kind.FLOAT, "fast"),
            (Kind.BOOLEAN, "maybe"),
            (Kind.BOOLEAN, 2),
            (Kind.STRING, ["a"]),
            (Kind.URL, "localhost"),
            (Kind.URL, "localhost:5432"),
            (Kind.URL, "db.internal:5432/itil"),
            (Kind.URL, "sqlite:"),
            (Kind.URL, 5432),
            (Kind.IP_ADDRESS, "localhost"),
            (Kind.IP_ADDRESS, "256.0.0.1"),
            (Kind.LIST, 3),
        ],
    )
    def test_rejected_values(self, kind, raw):
        """Test that values of the wrong shape raise InvalidTypeError."""
        with pytest.raises(InvalidTypeError) as exc_info:
            coerce(raw, Field("f", kind), ("s", "f"))

        assert exc_info.value.expected == kind.value
        assert exc_info.value.got == raw
        assert exc_info.value.path == ("s", "f")

    def test_bounds(self):
        """Test that minimum and maximum are enforced."""
        field_def = Field("port", Kind.INTEGER, minimum=1, maximum=65535)

        with pytest.raises(InvalidTypeError, match="<= 65535"):
            coerce("70000", field_def, ("server", "port"))
        with pytest.raises(InvalidTypeError, match=">= 1"):
            coerce(0, field_def, ("server", "port"))

    def test_choices(self):
        """Test that choices restrict the coerced value."""
        field_def = Field("level", choices=("info", "debug"))

        assert coerce("debug", field_def, ("log", "level")) == "debug"
        with pytest.raises(InvalidTypeError, match="one of"):
            coerce("loud", field_def, ("log", "level"))

    def test_host_port_without_scheme_names_reason(self):
        """Test that localhost:5432 is rejected as a URL without a host."""
        with pytest.raises(InvalidTypeError, match="missing host"):
            coerce("localhost:5432", Field("url", Kind.URL), ("database", "url"))

    def test_invalid_port_from_environment(self, valid_tree, registry):
        """Test that server.port=notanumber names path, kind and origin."""
        valid_tree["server"]["port"] = "notanumber"
        origins = {("server", "port"): "environment variable APP_SERVER__PORT"}

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(valid_tree, registry=registry, origins=origins)

        (error,) = exc_info.value.errors
        assert isinstance(error, InvalidTypeError)
        assert error.path == ("server", "port")
        assert error.expected == "integer"
        assert error.got == "notanumber"
        assert error.origin == "environment variable APP_SERVER__PORT"
        assert "APP_SERVER__PORT" in str(error)

    def test_section_that_is_not_a_table(self, valid_tree, registry):
        """Test that a scalar in place of a section is reported."""
        valid_tree["server"] = "0.0.0.0:3000"

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(valid_tree, registry=registry)

        (error,) = exc_info.value.errors
        assert isinstance(error, InvalidTypeError)
        assert error.path == ("server",)
        assert error.expected == "section"


class TestAggregation:
    """Tests that one decode pass reports every problem."""

    def test_missing_and_invalid_reported_together(self, registry):
        """Test that missing and mistyped fields are raised together."""
        tree = {"server": {"port": "abc"}, "database": {"url": "nope"}}

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(tree, registry=registry)

        assert exc_info.value.paths == ["server.ip", "server.port", "database.url"]
        kinds = [type(e) for e in exc_info.value.errors]
        assert kinds == [MissingFieldError, InvalidTypeError, InvalidTypeError]
        assert "3 error(s)" in str(exc_info.value)


class TestDecodeResult:
    """Tests for a successful decode."""

    def test_builds_typed_config(self, valid_tree, registry):
        """Test that the built-in sections are typed."""
        valid_tree["server"]["port"] = "8080"

        config = decode(valid_tree, registry=registry, environment="test")

        assert config.server.ip == "127.0.0.1"
        assert config.server.port == 8080
        assert config.database.url == "postgres://localhost/itil"
        assert config.environment == "test"

    def test_config_is_immutable(self, valid_tree, registry):
        """Test that the resolved config cannot be changed."""
        import dataclasses

        config = decode(valid_tree, registry=registry)

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.server.port = 1  # type: ignore[misc]
        with pytest.raises(TypeError):
            config.extensions["x"] = 1  # type: ignore[index]

    def test_unregistered_sections_are_ignored(self, valid_tree, registry):
        """Test that unknown top-level branches do not fail decoding."""
        valid_tree["tracing"] = {"endpoint": "http://collector"}

        config = decode(valid_tree, registry=registry)

        assert dict(config.extensions) == {}

    def test_schema_without_builtins_is_rejected(self, valid_tree, registry):
        """Test that a schema must keep the server and database sections."""
        schema = Schema(sections=(Section("server", fields=[Field("ip")]),))

        with pytest.raises(ConfigError, match="database"):
            decode(valid_tree, schema, registry=registry)

    def test_replaced_server_section_missing_port(self, valid_tree, registry):
        """Test that dropping server.port is a ConfigError, not a KeyError."""
        schema = Schema(
            sections=(
                Section("server", fields=[Field("ip", Kind.IP_ADDRESS)]),
                DATABASE_SECTION,
            )
        )

        with pytest.raises(ConfigError, match=r"server\.port is not declared"):
            decode(valid_tree, schema, registry=registry)

    @pytest.mark.parametrize(
        ("ip_field", "message"),
        [
            (Field("ip", Kind.IP_ADDRESS, required=False), "required or have a default"),
            (Field("ip", Kind.IP_ADDRESS, default=None), "cannot default to None"),
            (Field("ip", Kind.STRING), "must be ip address, not string"),
        ],
    )
    def test_replaced_server_section_weakened_ip(self, valid_tree, registry, ip_field, message):
        """Test that server.ip cannot become optional or change kind."""
        schema = Schema(
            sections=(
                Section(
                    "server",
                    fields=[ip_field, Field("port", Kind.INTEGER, minimum=1, maximum=65535)],
                ),
                DATABASE_SECTION,
            )
        )
        del valid_tree["server"]["ip"]

        with pytest.raises(ConfigError, match=message):
            decode(valid_tree, schema, registry=registry)

    def test_replaced_server_section_with_default_port(self, registry):
        """Test that a replacement may add defaults and extra fields."""
        schema = Schema(
            sections=(
                Section(
                    "server",
                    fields=[
                        Field("ip", Kind.IP_ADDRESS),
                        Field("port", Kind.INTEGER, default=8080),
                        Field("workers", Kind.INTEGER, default=2),
                    ],
                ),
                DATABASE_SECTION,
            )
        )
        tree = {"server": {"ip": "10.0.0.1"}, "database": {"url": "postgres://db"}}

        config = decode(tree, schema, registry=registry)

        assert config.server.address == "10.0.0.1:8080"

    def test_schema_with_extra_section(self, valid_tree, registry):
        """Test that extra schema sections decode as extensions."""
        extra = Section("web", fields=[Field("workers", Kind.INTEGER, default=4)])
        schema = Schema(sections=CORE_SCHEMA.sections + (extra,))

        config = decode(valid_tree, schema, registry=registry)

        assert config.section("web") == {"workers": 4}


class TestExtensionSections:
    """Tests for registered extension sections."""

    def test_declarative_section(self, valid_tree, registry):
        """Test that a registered Section decodes its subtree."""
        registry.register(
            "mailer",
            Section(
                "mailer",
                fields=[
                    Field("host"),
                    Field("port", Kind.INTEGER, default=25),
                    Field("tls", Kind.BOOLEAN, default=False),
                ],
            ),
        )
        valid_tree["mailer"] = {"host": "mx.example.com", "tls": "yes"}

        config = decode(valid_tree, registry=registry)

        assert config.section("mailer") == {
            "host": "mx.example.com",
            "port": 25,
            "tls": True,
        }

    def test_nested_declarative_section(self, valid_tree, registry):
        """Test that nested sections decode recursively."""
        registry.register(
            "sla",
            Section(
                "sla",
                sections=[
                    Section("p1", fields=[Field("hours", Kind.INTEGER)]),
                ],
            ),
        )
        valid_tree["sla"] = {"p1": {"hours": "4"}}

        config = decode(valid_tree, registry=registry)

        assert config.section("sla")["p1"]["hours"] == 4

    def test_callable_receives_subtree(self, valid_tree, registry):
        """Test that a callable decoder gets its own subtree and path."""
        seen = {}

        def decode_features(subtree, path):
            seen["args"] = (subtree, path)
            return frozenset(k for k, v in subtree.items() if v)

        registry.register("features", decode_features)
        valid_tree["features"] = {"problems": True, "changes": False}

        config = decode(valid_tree, registry=registry)

        assert seen["args"] == ({"problems": True, "changes": False}, ("features",))
        assert config.section("features") == frozenset({"problems"})

    def test_absent_registered_section_gets_empty_subtree(self, valid_tree, registry):
        """Test that a registered section missing from the tree is still decoded."""
        registry.register("features", lambda subtree, path: dict(subtree))

        config = decode(valid_tree, registry=registry)

        assert config.section("features") == {}

    def test_extension_errors_join_the_aggregate(self, registry):
        """Test that extension failures are reported with built-in failures."""

        def decode_features(subtree, path):
            raise FieldError(path + ("flags",), "unknown flag 'x'")

        registry.register(
            "mailer", Section("mailer", fields=[Field("port", Kind.INTEGER)])
        )
        registry.register("features", decode_features)
        tree = {
            "server": {"ip": "127.0.0.1", "port": 1},
            "mailer": {"port": "twenty-five"},
            "features": {},
        }

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(tree, registry=registry)

        assert exc_info.value.paths == ["database.url", "mailer.port", "features.flags"]

    def test_callable_may_use_decode_section(self, valid_tree, registry):
        """Test that decode_section errors from a callable are collected."""
        inner = Section("cache", fields=[Field("ttl", Kind.INTEGER)])
        registry.register("cache", lambda subtree, path: decode_section(subtree, inner, path))
        valid_tree["cache"] = {"ttl": "soon"}

        with pytest.raises(ConfigValidationError) as exc_info:
            decode(valid_tree, registry=registry)

        assert exc_info.value.paths == ["cache.ttl"]

    def test_cannot_register_builtin_section(self, registry):
        """Test that server and database cannot be replaced."""
        with pytest.raises(ConfigError):
            registry.register("Server", Section("server"))

    def test_unknown_section_lookup(self, registry):
        """Test that looking up an unregistered name lists what exists."""
        registry.register("mailer", Section("mailer"))

        with pytest.raises(ConfigError, match="Available: mailer"):
            registry.get("ldap")

    def test_config_section_lookup_error(self, valid_tree, registry):
        """Test that Config.section names the available sections."""
        config = decode(valid_tree, registry=registry)

        with pytest.raises(KeyError, match="none"):
            config.section("mailer")


class TestRoundTrip:
    """Tests for encode() followed by decode()."""

    def test_encode_then_decode_reproduces_config(self, registry):
        """Test that a well-typed tree survives encode/decode unchanged."""
        registry.register(
            "mailer",
            Section(
                "mailer",
                fields=[Field("host"), Field("port", Kind.INTEGER)],
                sections=[Section("auth", fields=[Field("user")])],
            ),
        )
        tree = {
            "server": {"ip": "::1", "port": "8443"},
            "database": {"url": "postgres://u:p@db/itil"},
            "mailer": {"host": "mx", "port": 587, "auth": {"user": "ops"}},
        }

        config = decode(tree, registry=registry)
        again = decode(encode(config), registry=registry)

        assert again == config
        assert isinstance(again, Config)
        assert encode(again)["server"] == {"ip": "::1", "port": 8443}


class TestDefaultRegistry:
    """Tests for the process-wide registry helpers."""

    @pytest.fixture
    def audit_section(self):
        section = Section("audit", fields=[Field("retention_days", Kind.INTEGER)])
        register_section("audit", section)
        yield section
        default_registry().unregister("audit")

    def test_register_and_lookup(self, audit_section):
        """Test that register_section is visible through get_section_decoder."""
        assert get_section_decoder("audit") is audit_section
        assert "audit" in default_registry()

    def test_decode_uses_default_registry(self, audit_section):
        """Test that decode() falls back to the process-wide registry."""
        tree = {
            "server": {"ip": "127.0.0.1", "port": 3000},
            "database": {"url": "postgres://db"},
            "audit": {"retention_days": "90"},
        }

        config = decode(tree)

        assert config.section("audit") == {"retention_days": 90}

    def test_unknown_name_lists_available(self, audit_section):
        """Test that the ConfigError names the registered sections."""
        with pytest.raises(ConfigError, match="Available: audit"):
            get_section_decoder("billing")


class TestSectionDeclaration:
    """Tests for Field and Section construction."""

    def test_duplicate_names_rejected(self):
        """Test that a field and a subsection cannot share a name."""
        with pytest.raises(ValueError, match="duplicate names: auth"):
            Section("mailer", fields=[Field("auth")], sections=[Section("auth")])

    @pytest.mark.parametrize("kind", [Kind.STRING, Kind.URL, Kind.BOOLEAN, Kind.LIST])
    def test_bounds_need_numeric_kind(self, kind):
        """Test that minimum/maximum on a non-numeric field fail at declaration."""
        with pytest.raises(ValueError, match="numeric kind"):
            Field("name", kind, minimum=1)
        with pytest.raises(ValueError, match="numeric kind"):
            Field("name", kind, maximum=10)

    def test_bounds_on_numeric_kinds(self):
        """Test that integer and float fields accept bounds."""
        assert Field("port", Kind.INTEGER, minimum=1).minimum == 1
        assert Field("ratio", Kind.FLOAT, maximum=1.0).maximum == 1.0
