import pytest

from delorean.rhmi_types import (
    OPERATOR_VERSION_TYPE,
    PRODUCT_VERSION_TYPE,
    VersionUpdateError,
    parse_version,
    prepare_product_name,
    set_version,
)

TYPES_FILE = """package v1alpha1

const (
	Version3Scale               ProductVersion = "2.11.0"
	VersionAMQOnline            ProductVersion = "1.5.4"
	VersionRHSSO                ProductVersion = "7.4"

	OperatorVersion3Scale              OperatorVersion = "0.8.0"
	OperatorVersionAMQOnline           OperatorVersion = "1.5.4"
	OperatorVersionRHSSO               OperatorVersion = "10.0.0"
)
"""


@pytest.fixture
def types_file(tmp_path):
    path = tmp_path / "rhmi_types"
    path.write_text(TYPES_FILE)
    return path


@pytest.mark.parametrize(
    "product, version, expected_line",
    [
        ("3scale", "9.9.9", 'OperatorVersion3Scale              OperatorVersion = "9.9.9"'),
        ("amq-online", "9.9.9", 'OperatorVersionAMQOnline           OperatorVersion = "9.9.9"'),
        ("3scale", "9.10.0", 'OperatorVersion3Scale              OperatorVersion = "9.10.0"'),
        ("amq-online", "9.10.0", 'OperatorVersionAMQOnline           OperatorVersion = "9.10.0"'),
    ],
)
def test_set_operator_version(types_file, product, version, expected_line):
    set_version(types_file, product, version, "")
    content = types_file.read_text()
    assert expected_line in content
    assert 'Version3Scale               ProductVersion = "2.11.0"' in content


def test_set_operator_and_product_version(types_file):
    set_version(types_file, "3scale", "9.9.9", "2.12.1")
    content = types_file.read_text()
    assert 'OperatorVersion3Scale              OperatorVersion = "9.9.9"' in content
    assert 'Version3Scale               ProductVersion = "2.12.1"' in content


def test_set_version_lower_leaves_file_untouched(types_file, capsys):
    set_version(types_file, "3scale", "0.1.0", "")
    assert types_file.read_text() == TYPES_FILE
    assert "not writing to file" in capsys.readouterr().out


def test_set_version_equal_leaves_file_untouched(types_file):
    set_version(types_file, "amq-online", "1.5.4", "")
    assert types_file.read_text() == TYPES_FILE


@pytest.mark.parametrize(
    "name, expected",
    [
        ("3scale", "3Scale"),
        ("amq-online", "AMQOnline"),
        ("amq-streams", "AMQStreams"),
        ("apicurito", "Apicurito"),
        ("codeready-workspaces", "CodeReadyWorkspaces"),
        ("fuse-online", "FuseOnline"),
        ("rhsso", "RHSSO"),
        ("rhssouser", "RHSSOUser"),
        ("other", "other"),
    ],
)
def test_prepare_product_name(name, expected):
    assert prepare_product_name(name) == expected


def test_parse_version_strips_quotes_and_spaces():
    out = parse_version(TYPES_FILE, "3Scale", ' "1.0.0" ', OPERATOR_VERSION_TYPE)
    assert 'OperatorVersion3Scale              OperatorVersion = "1.0.0"' in out


def test_parse_version_equal_returns_none():
    assert parse_version(TYPES_FILE, "AMQOnline", "1.5.4", PRODUCT_VERSION_TYPE) is None


def test_parse_version_greater_current_raises():
    with pytest.raises(VersionUpdateError, match="is greater than supplied version v9.0.0"):
        parse_version(TYPES_FILE, "RHSSO", "9.0.0", OPERATOR_VERSION_TYPE)


def test_parse_version_shorthand_current_compares():
    out = parse_version(TYPES_FILE, "RHSSO", "7.4.1", PRODUCT_VERSION_TYPE)
    assert 'VersionRHSSO                ProductVersion = "7.4.1"' in out


def test_parse_version_invalid_semver_raises():
    with pytest.raises(VersionUpdateError, match="invalid semver"):
        parse_version(TYPES_FILE, "3Scale", "not-a-version", OPERATOR_VERSION_TYPE)


def test_parse_version_prerelease_is_lower_than_release():
    text = 'OperatorVersionX OperatorVersion = "1.0.0-rc1"\n'
    assert parse_version(text, "X", "1.0.0", OPERATOR_VERSION_TYPE) == (
        'OperatorVersionX OperatorVersion = "1.0.0"\n'
    )


def test_parse_version_missing_product_raises():
    with pytest.raises(VersionUpdateError):
        parse_version(TYPES_FILE, "Unknown", "1.0.0", OPERATOR_VERSION_TYPE)