import re

from fleet_broker.services.pkce import compute_code_challenge, generate_pkce, generate_state


def test_state_is_32_hex_chars() -> None:
    assert re.fullmatch(r"[0-9a-f]{32}", generate_state())


def test_states_do_not_collide() -> None:
    states = {generate_state() for _ in range(10_000)}

    assert len(states) == 10_000


def test_challenge_matches_rfc7636_example() -> None:
    verifier = "dBjftJeZ4CVP-mJ92IgdkP1PUC-H6yy4L8RLQ3lhqZc"

    assert compute_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_generated_pair_is_unpadded_base64url() -> None:
    pair = generate_pkce()

    assert len(pair.verifier) == 43
    assert re.fullmatch(r"[A-Za-z0-9_-]+", pair.verifier)
    assert "=" not in pair.challenge
    assert pair.challenge == compute_code_challenge(pair.verifier)
    assert pair.challenge != pair.verifier
