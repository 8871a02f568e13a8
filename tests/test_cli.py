import hashlib
import json
import os

import pytest

from govsig.cli import aggregate_main, keygen_main, sign_main, verify_main


def read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def make_key(tmp_path, capsys):
    def _make(name):
        path = str(tmp_path / f"{name}.key")
        assert keygen_main(["--output", path, "--format", "json"]) == 0
        capsys.readouterr()
        return path
    return _make


@pytest.fixture
def binary(tmp_path):
    path = tmp_path / "bllvm"
    path.write_bytes(os.urandom(4096))
    return str(path)


def sign(target_args, key, output, capsys):
    code = sign_main(target_args + ["--key", key, "--output", output])
    capsys.readouterr()
    return code


# ------------------------------------------------------------
# keygen
# ------------------------------------------------------------

def test_keygen_writes_key_file(tmp_path, capsys):
    path = str(tmp_path / "maintainer.key")
    assert keygen_main(["--output", path, "--format", "json"]) == 0
    out = json.loads(capsys.readouterr().out)
    data = read_json(path)
    assert set(data) == {"public_key", "secret_key", "created_at"}
    assert out["public_key"] == data["public_key"]
    assert len(data["public_key"]) == 66
    assert "secret_key" not in out
    assert oct(os.stat(path).st_mode & 0o777) == oct(0o600)


def test_keygen_seed_is_deterministic(tmp_path, capsys):
    seed = "x" * 32
    a, b = str(tmp_path / "a.key"), str(tmp_path / "b.key")
    assert keygen_main(["--output", a, "--seed", seed]) == 0
    assert keygen_main(["--output", b, "--seed", seed + "tail"]) == 0
    assert read_json(a)["public_key"] == read_json(b)["public_key"]


def test_keygen_short_seed_rejected(tmp_path, capsys):
    assert keygen_main(["--output", str(tmp_path / "k.key"), "--seed", "short"]) == 2
    assert "INVALID_KEY" in capsys.readouterr().err


def test_keygen_show_private(tmp_path, capsys):
    path = str(tmp_path / "k.key")
    assert keygen_main(["--output", path, "--show-private"]) == 0
    assert read_json(path)["secret_key"] in capsys.readouterr().out


# ------------------------------------------------------------
# sign
# ------------------------------------------------------------

def test_sign_ten_megabyte_binary(tmp_path, make_key, capsys):
    data = os.urandom(10 * 1024 * 1024)
    binary_path = tmp_path / "bllvm"
    binary_path.write_bytes(data)
    key = make_key("maintainer")
    output = str(tmp_path / "signature.json")

    code = sign_main([
        "binary", "--file", str(binary_path),
        "--binary-type", "application", "--version", "0.1.0",
        "--key", key, "--output", output, "--format", "json",
    ])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    envelope = read_json(output)

    assert envelope["target_hash"] == hashlib.sha256(data).hexdigest()
    assert envelope["target_type"] == "binary"
    assert envelope["metadata"] == {"binary_type": "application", "version": "0.1.0"}
    assert envelope["signer"] == read_json(key)["public_key"]
    assert out["target_hash"] == envelope["target_hash"]


def test_sign_governance_messages(tmp_path, make_key, capsys):
    key = make_key("maintainer")
    cases = [
        (["release", "--version", "1.0.0", "--commit", "deadbeef"], "release"),
        (["module", "--name", "lightning", "--version", "0.2.0"], "module_approval"),
        (["budget", "--amount", "50000", "--purpose", "audit"], "budget_decision"),
    ]
    for args, target_type in cases:
        output = str(tmp_path / f"{target_type}.json")
        assert sign(args, key, output, capsys) == 0
        assert read_json(output)["target_type"] == target_type


def test_sign_missing_file(tmp_path, make_key, capsys):
    key = make_key("maintainer")
    code = sign_main(["binary", "--file", str(tmp_path / "missing"), "--key", key])
    assert code == 2
    assert "FILE_NOT_FOUND" in capsys.readouterr().err


def test_sign_bad_key_file(tmp_path, binary, capsys):
    key = tmp_path / "bad.key"
    key.write_text("{not json")
    code = sign_main(["binary", "--file", binary, "--key", str(key), "--output", str(tmp_path / "s.json")])
    assert code == 2
    assert "SERIALIZATION" in capsys.readouterr().err


def test_sign_binary_key_file(tmp_path, binary, capsys):
    key = tmp_path / "binary.key"
    key.write_bytes(b"\xff\xfe\x00\x01" + os.urandom(64))
    code = sign_main(["binary", "-f", binary, "-k", str(key), "--output", str(tmp_path / "s.json")])
    assert code == 2
    assert "SERIALIZATION" in capsys.readouterr().err


def test_sign_bundle_has_no_binary_type(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    output = str(tmp_path / "bundle.json")
    assert sign(["bundle", "--file", binary, "--version", "0.1.0"], key, output, capsys) == 0
    assert read_json(output)["metadata"] == {"version": "0.1.0"}


# ------------------------------------------------------------
# verify
# ------------------------------------------------------------

def test_verify_single_signer(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0

    assert verify_main(["binary", "--file", binary, "--signature", sig, "--public-key", key]) == 0
    assert "PASSED" in capsys.readouterr().out

    pubkey_hex = read_json(key)["public_key"]
    assert verify_main(["binary", "--file", binary, "--signature", sig, "--public-key", pubkey_hex]) == 0


def test_verify_tampered_binary(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0

    with open(binary, "ab") as f:
        f.write(b"\x00")
    code = verify_main([
        "binary", "--file", binary, "--signature", sig, "--public-key", key, "--format", "json",
    ])
    assert code == 1
    out = json.loads(capsys.readouterr().out)
    assert out["success"] is False
    assert out["failure"] == "TARGET_MISMATCH"


def test_verify_wrong_key(tmp_path, make_key, binary, capsys):
    key, other = make_key("maintainer"), make_key("other")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0
    assert verify_main(["binary", "--file", binary, "--signature", sig, "--public-key", other]) == 1
    assert "SIGNATURE_VERIFICATION" in capsys.readouterr().out


def test_verify_wrong_target_type(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0
    assert verify_main(["checksums", "--file", binary, "--signature", sig, "--public-key", key]) == 1
    assert "TARGET_MISMATCH" in capsys.readouterr().out


def test_verify_malformed_envelope(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = tmp_path / "signature.json"
    sig.write_text(json.dumps({"target_type": "binary", "target_hash": "00"}))
    assert verify_main(["binary", "--file", binary, "--signature", str(sig), "--public-key", key]) == 2
    assert "MESSAGE_FORMAT" in capsys.readouterr().err


def test_verify_single_key_rejects_threshold(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0
    code = verify_main([
        "binary", "--file", binary, "--signature", sig, "--public-key", key, "--threshold", "2",
    ])
    assert code == 2
    assert "INVALID_INPUT" in capsys.readouterr().err


def test_verify_mislabeled_signature_across_files(tmp_path, make_key, capsys):
    k1, k2 = make_key("k1"), make_key("k2")
    sig1, sig2 = str(tmp_path / "sig1.json"), str(tmp_path / "sig2.json")
    release = ["release", "--version", "1.0.0", "--commit", "deadbeef"]
    assert sign(release, k1, sig1, capsys) == 0
    assert sign(release, k2, sig2, capsys) == 0

    mislabeled = read_json(sig2)
    mislabeled["signer"] = read_json(k1)["public_key"]
    with open(sig2, "w", encoding="utf-8") as f:
        json.dump(mislabeled, f)

    code = verify_main(release + [
        "--signature", f"{sig1},{sig2}", "--public-keys", f"{k1},{k2}", "--threshold", "2-of-2",
    ])
    assert code == 0


def test_verify_requires_a_key(tmp_path, make_key, binary, capsys):
    key = make_key("maintainer")
    sig = str(tmp_path / "signature.json")
    assert sign(["binary", "--file", binary], key, sig, capsys) == 0
    assert verify_main(["binary", "--file", binary, "--signature", sig]) == 2
    assert "INVALID_INPUT" in capsys.readouterr().err


# ------------------------------------------------------------
# multisig and aggregate
# ------------------------------------------------------------

@pytest.fixture
def release_signatures(tmp_path, make_key, capsys):
    keys = [make_key(f"maintainer{i}") for i in range(3)]
    sigs = []
    for i, key in enumerate(keys):
        output = str(tmp_path / f"sig{i}.json")
        assert sign(["release", "--version", "1.0.0", "--commit", "deadbeef"], key, output, capsys) == 0
        sigs.append(output)
    return keys, sigs


def test_aggregate_and_verify_quorum(tmp_path, release_signatures, capsys):
    keys, sigs = release_signatures
    merged = str(tmp_path / "aggregate.json")
    assert aggregate_main(["--signatures"] + sigs + ["--output", merged, "--threshold", "3"]) == 0
    capsys.readouterr()

    data = read_json(merged)
    assert len(data["signatures"]) == 3
    assert data["threshold"] == 3

    code = verify_main([
        "release", "--version", "1.0.0", "--commit", "deadbeef",
        "--signature", merged, "--public-keys", ",".join(keys), "--threshold", "3-of-3",
    ])
    assert code == 0


def test_verify_reports_missing_approvals(tmp_path, release_signatures, capsys):
    keys, sigs = release_signatures
    merged = str(tmp_path / "aggregate.json")
    assert aggregate_main(["--signatures", sigs[0], "--signatures", sigs[1], "--output", merged]) == 0
    capsys.readouterr()

    code = verify_main([
        "release", "--version", "1.0.0", "--commit", "deadbeef", "--format", "json",
        "--signature", merged, "--public-keys", ",".join(keys), "--threshold", "3-of-3",
    ])
    assert code == 1
    out = json.loads(capsys.readouterr().out)
    assert out["failure"] == "INSUFFICIENT_SIGNATURES"
    assert out["details"]["got"] == 2
    assert out["details"]["need"] == 3

    code = verify_main([
        "release", "--version", "1.0.0", "--commit", "deadbeef",
        "--signature", merged, "--public-keys", ",".join(keys), "--threshold", "2",
    ])
    assert code == 0


def test_verify_merges_several_signature_files(release_signatures, capsys):
    keys, sigs = release_signatures
    args = ["release", "--version", "1.0.0", "--commit", "deadbeef", "--threshold", "2-of-3"]
    for key in keys:
        args += ["--public-keys", key]
    assert verify_main(args + ["--signature", f"{sigs[0]},{sigs[2]}"]) == 0


def test_verify_threshold_key_count_mismatch(release_signatures, capsys):
    keys, sigs = release_signatures
    code = verify_main([
        "release", "--version", "1.0.0", "--commit", "deadbeef",
        "--signature", sigs[0], "--public-keys", ",".join(keys), "--threshold", "2-of-4",
    ])
    assert code == 2
    assert "INVALID_INPUT" in capsys.readouterr().err


def test_verify_invalid_threshold(release_signatures, capsys):
    keys, sigs = release_signatures
    code = verify_main([
        "release", "--version", "1.0.0", "--commit", "deadbeef",
        "--signature", sigs[0], "--public-keys", ",".join(keys), "--threshold", "4",
    ])
    assert code == 2
    assert "INVALID_THRESHOLD" in capsys.readouterr().err


def test_aggregate_rejects_different_targets(tmp_path, make_key, release_signatures, capsys):
    keys, sigs = release_signatures
    other = str(tmp_path / "other.json")
    assert sign(["release", "--version", "1.0.1", "--commit", "deadbeef"], keys[0], other, capsys) == 0
    code = aggregate_main(["--signatures", sigs[0], other, "--output", str(tmp_path / "agg.json")])
    assert code == 2
    assert "TARGET_MISMATCH" in capsys.readouterr().err
