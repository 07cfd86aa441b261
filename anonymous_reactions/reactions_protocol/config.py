"""
Protocol configuration for anonymous reactions.

Every constant in this module is consensus relevant: the proving circuits, the
client-side prover and every node must agree on them bit for bit. Changing a
value here is a protocol break and requires a new circuit version.
"""

from .exceptions import ConfigurationError

# ============================================================================
# CURVE SELECTION
# ============================================================================

# Baby JubJub: twisted Edwards curve embedded in the BN254 scalar field.
#   a*x^2 + y^2 = 1 + d*x^2*y^2
# Chosen because the reaction circuits run over BN254 and point arithmetic on an
# embedded curve costs a handful of constraints per operation.

CURVE_NAME = "babyjubjub"

FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_ELEMENT_BYTES = 32

CURVE_A = 168700
CURVE_D = 168696

# Base8 generator of the prime-order subgroup (circomlib convention)
GENERATOR_X = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553
)
GENERATOR_Y = (
    16950150798460657717958625567821834550301663161624707787222815936182638968203
)

SUBGROUP_ORDER = (
    2736030358979909402780800718157159386076813972158567259200215660948447373041
)
COFACTOR = 8

# Scalar multiplication always walks this many bits
SCALAR_BITS = 256

POINT_SIZE_BYTES = 2 * FIELD_ELEMENT_BYTES  # X || Y, big-endian

# ============================================================================
# POSEIDON
# ============================================================================

POSEIDON_FULL_ROUNDS = 8
POSEIDON_PARTIAL_ROUNDS = 57
POSEIDON_ALPHA = 5
POSEIDON_WIDTHS = (3, 5)  # t=3 for 1-2 inputs, t=5 for 3-4 inputs
POSEIDON_MAX_INPUTS = 4

# ============================================================================
# MEMBERSHIP TREE
# ============================================================================

MERKLE_TREE_DEPTH = 20
MERKLE_ZERO_LEAF = 0
MERKLE_TREE_CAPACITY = 2**MERKLE_TREE_DEPTH

# Number of most recent roots a proof may be bound to
ROOT_GRACE_WINDOW = 3

COMMITMENT_SIZE_BYTES = 32
NULLIFIER_SIZE_BYTES = 32

# ============================================================================
# KEY DERIVATION (HKDF-SHA256)
# ============================================================================

HKDF_OUTPUT_BYTES = 32
SHARED_KEY_SIZE_BYTES = 32

ADDRESS_COMMITMENT_SALT = b"hush-network-address-commitment"
ADDRESS_COMMITMENT_INFO = b"address-secret-v1"

LOCAL_SECRET_SALT = b"hush-network-reactions"
LOCAL_SECRET_INFO = b"user-secret-v1"

REACTION_KEY_INFO = b"protocol_omega/group_reaction/v1"
FEED_SECRET_INFO = b"protocol_omega/feed_pk/v1"

# Domain tag mixed into nullifiers: int.from_bytes(b"omega-nullifier-v1", "big")
NULLIFIER_DOMAIN = int.from_bytes(b"omega-nullifier-v1", "big")

# ============================================================================
# VOTES
# ============================================================================

# One ElGamal ciphertext per emoji kind
VOTE_SLOTS = 6

# Display order of the vote slots
VOTE_LABELS = ("thumbs_up", "heart", "laugh", "surprised", "sad", "angry")

# Upper bound for brute-force decryption of a tally slot
MAX_DECRYPT_COUNT = 100_000

# ============================================================================
# CIRCUITS
# ============================================================================

CURRENT_CIRCUIT_VERSION = "omega-v1.0.0"
SUPPORTED_CIRCUIT_VERSIONS = (CURRENT_CIRCUIT_VERSION,)
DEPRECATED_CIRCUIT_VERSIONS: tuple = ()
VULNERABLE_CIRCUIT_VERSIONS: tuple = ()

# nullifier, message_id, root, author commitment, pk(x, y), C1[6](x, y), C2[6](x, y)
PUBLIC_INPUT_COUNT = 6 + 4 * VOTE_SLOTS

GROTH16_PROOF_BYTES = 256

# ============================================================================
# SUBMISSION PIPELINE
# ============================================================================

MAX_TALLY_RETRIES = 3
RETRY_BACKOFF_SECONDS = 0.05
MAX_SYNC_TALLIES = 1000

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if FIELD_MODULUS.bit_length() != 254:
        raise ConfigurationError("Field modulus must be the 254-bit BN254 scalar field")
    if SUBGROUP_ORDER * COFACTOR >= FIELD_MODULUS * 2:
        raise ConfigurationError("Subgroup order inconsistent with field size")
    if SCALAR_BITS < SUBGROUP_ORDER.bit_length():
        raise ConfigurationError("Scalar ladder shorter than subgroup order")
    if CURVE_A == CURVE_D:
        raise ConfigurationError("Curve parameters a and d must differ")
    if POSEIDON_FULL_ROUNDS % 2 != 0:
        raise ConfigurationError("Poseidon full rounds must be even")
    if MERKLE_TREE_DEPTH != 20:
        raise ConfigurationError("Membership circuits are compiled for depth 20")
    if ROOT_GRACE_WINDOW < 1:
        raise ConfigurationError("Root grace window must be at least 1")
    if VOTE_SLOTS < 1:
        raise ConfigurationError("At least one vote slot is required")
    if len(VOTE_LABELS) != VOTE_SLOTS:
        raise ConfigurationError("Every vote slot needs a label")
    if CURRENT_CIRCUIT_VERSION not in SUPPORTED_CIRCUIT_VERSIONS:
        raise ConfigurationError("Current circuit version must be supported")
    if set(SUPPORTED_CIRCUIT_VERSIONS) & set(VULNERABLE_CIRCUIT_VERSIONS):
        raise ConfigurationError("A circuit version cannot be both supported and vulnerable")
    if MAX_TALLY_RETRIES < 1:
        raise ConfigurationError("At least one tally attempt is required")

    return True


# Auto-validate on import
validate_config()
