# client.py
#
# Voter side: fetch the session's public key, encrypt a 0/1 vote locally and
# submit only the ciphertext to the tally server.

from .codec import decode_int, encode_int, preview
from .errors import InvalidVoteError
from .log import make_logger
from .paillier import PublicKey, encrypt

VOTE_VALUES = {"yes": 1, "no": 0}


def load_public_key(path) -> PublicKey:
    """Read the Paillier public key (n, g) written by the authority."""
    with open(path) as f:
        n, g = map(decode_int, f.read().split())
    return PublicKey(n, g)


def parse_vote(vote) -> int:
    """Map 'yes'/'no' (any case) or 0/1 to the ballot value."""
    if isinstance(vote, str):
        try:
            return VOTE_VALUES[vote.strip().lower()]
        except KeyError:
            raise InvalidVoteError(f"Vote must be 'yes' or 'no', got {vote!r}") from None
    if isinstance(vote, bool) or not isinstance(vote, int) or vote not in (0, 1):
        raise InvalidVoteError(f"Vote must be 0 (NO) or 1 (YES), got {vote!r}")
    return vote


def encrypt_vote(vote, public_key: PublicKey) -> int:
    """Encrypt one ballot. Only 0 and 1 are accepted; the cipher itself would take any m < n."""
    return encrypt(parse_vote(vote), public_key)


class VoterClient:
    """A voter casting ballots into one session."""

    def __init__(self, server, session_id: str, public_key: PublicKey = None, logger=None, fmt="dec"):
        self.server = server
        self.session_id = session_id
        self.fmt = fmt
        self.logger = logger or make_logger("Client")
        if public_key is None:
            public_key = PublicKey.from_dict(server.get_session(session_id)["public_key"])
        self.public_key = public_key

    def cast_vote(self, vote) -> int:
        """Encrypt and submit a vote; returns the ballot count the server reports."""
        ciphertext = encrypt_vote(vote, self.public_key)
        count = self.server.submit_ballot(self.session_id, encode_int(ciphertext, self.fmt))
        self.logger(f"→ Server: ballot {preview(ciphertext, 24)} accepted as #{count}")
        return count
