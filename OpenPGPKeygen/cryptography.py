from struct import pack
import collections
import hashlib
import hmac
import logging

from Crypto.Random import get_random_bytes
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, x25519
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
try:
    from cryptography.hazmat.decrepit.ciphers.modes import CFB
except ImportError: # Releases that still keep CFB with the other modes
    from cryptography.hazmat.primitives.ciphers.modes import CFB

import OpenPGPKeygen
from OpenPGPKeygen import (
    ChecksumError, InvalidParameterError, UnsupportedAlgorithmError,
    PublicKeyPacket, PublicSubkeyPacket, SecretKeyPacket, SecretSubkeyPacket,
    SignaturePacket, UserIDPacket, S2K,
)
from OpenPGPKeygen.secure import SecureBytes, wipe

__all__ = [
    'KeyProtector', 'Keys', 'KeyId', 'decode_secret_key', 'format_private', 'format_public',
    'get_key_id', 'get_keys', 'sign_data', 'verify_signature', 'verified_signatures',
]

log = logging.getLogger(__name__)

# Protection of exported secret keys
DEFAULT_S2K_HASH = 'sha1'
DEFAULT_S2K_COUNT = 240
DEFAULT_CIPHER = 'aes128'

SIGNATURE_HASH = 'sha512'
SUBKEY_KDF_HASH = 'sha256'
SUBKEY_KDF_CIPHER = 'aes128'

# Same preferences as GnuPG, so generated keys do not stand out
PREFERRED_SYMMETRIC = ['aes256', 'aes192', 'aes128', 'tripledes']
PREFERRED_AEAD = ['OCB', 'EAX']
PREFERRED_HASH = ['sha512', 'sha384', 'sha256', 'sha224', 'sha1']
PREFERRED_COMPRESSION = ['zlib', 'bzip2', 'zip']
FEATURES = ['v5Keys', 'aead', 'modDetect']

SECRET_KEY_ALGORITHMS = ('ECDH', 'ECDSA', 'EdDSA')

MAX_CREATION_TIME = 2 ** 46

Keys = collections.namedtuple('Keys', ['key_id', 'public_key', 'private_key'])
KeyId = collections.namedtuple('KeyId', ['fingerprint', 'key_id'])


def get_cipher(algo):
    """ (cipher factory, key bytes, block bytes) for an OpenPGP symmetric
        algorithm. Secret keys are only ever protected with AES-CFB.
    """
    def cipher(m, ks, bs):
        return (lambda k: lambda iv: Cipher(m(k), CFB(iv)), ks, bs)

    if algo in ('aes128', 'aes192', 'aes256'):
        return cipher(algorithms.AES, OpenPGPKeygen.symmetric_key_sizes[algo], 16)

    raise UnsupportedAlgorithmError("Unsupported cipher: %r" % (algo,))


def aes_cfb(algo, data, key, iv, decrypt=False):
    """ Returns a bytearray holding the result """
    cipher, key_bytes, key_block_bytes = get_cipher(algo)
    # Files can be malformed, so check before handing anything to the cipher
    if len(key) != key_bytes:
        raise InvalidParameterError("aes-cfb: wrong key length")
    if len(iv) != key_block_bytes:
        raise InvalidParameterError("aes-cfb: wrong IV")

    ctx = cipher(key)(bytes(iv))
    ctx = ctx.decryptor() if decrypt else ctx.encryptor()
    out = bytearray(len(data) + key_block_bytes - 1)
    written = ctx.update_into(data, out)
    ctx.finalize()
    del out[written:]
    return out


def validate_date(timestamp):
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or not 0 <= timestamp < MAX_CREATION_TIME:
        raise InvalidParameterError("Invalid PGP key creation time: must be a valid UNIX timestamp")


def _check_seed(seed):
    if len(seed) != 32:
        raise InvalidParameterError("Ed25519 seed must be 32 bytes, got %d" % len(seed))


def extended_private_key(seed):
    """ RFC 8032 key expansion: (clamped scalar, nonce prefix).
        Both are bytearrays the caller must wipe.
    """
    _check_seed(seed)
    digest = bytearray(hashlib.sha512(bytes(seed)).digest())
    head = digest[:32]
    head[0] &= 248
    head[31] &= 127
    head[31] |= 64
    prefix = digest[32:]
    wipe(digest)
    return head, prefix


def _raw_public(key):
    return key.public_key().public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


def _native_point(public):
    """ ECC points are MPIs of 0x40 followed by the native point encoding """
    return int.from_bytes(b'\x40' + public, 'big')


def get_public_packets(ed_seed, cv_scalar, created_at=0):
    """ (primary key packet, subkey packet, fingerprint, key id) """
    validate_date(created_at)
    _check_seed(ed_seed)
    ed_public = _raw_public(ed25519.Ed25519PrivateKey.from_private_bytes(bytes(ed_seed)))
    ed_packet = PublicKeyPacket('ed25519', _native_point(ed_public), 'EdDSA', created_at)

    cv_public = _raw_public(x25519.X25519PrivateKey.from_private_bytes(bytes(cv_scalar)))
    cv_packet = PublicSubkeyPacket('curve25519', _native_point(cv_public), 'ECDH', created_at,
                                   SUBKEY_KDF_HASH, SUBKEY_KDF_CIPHER)

    fingerprint = ed_packet.fingerprint()
    return ed_packet, cv_packet, fingerprint, ed_packet.key_id()


def hash_signature(sig, key, target):
    """ Digest of http://tools.ietf.org/html/rfc4880#section-5.2.4
        target is the certified UserIDPacket or the bound subkey packet.
    """
    try:
        hasher = OpenPGPKeygen.hash_constructors[sig.hash_algorithm].new()
    except KeyError:
        raise UnsupportedAlgorithmError("Unsupported signature hash: %r" % (sig.hash_algorithm,))

    if sig.signature_type in OpenPGPKeygen.certification_types:
        user_id = target.body()
        material = key.fingerprint_material() + [pack('!B', 0xB4), pack('!L', len(user_id)), user_id]
    elif sig.signature_type == 'subkeyBinding':
        material = key.fingerprint_material() + target.fingerprint_material()
    else:
        raise UnsupportedAlgorithmError("Unsupported signature type: %r" % (sig.signature_type,))

    hasher.update(b''.join(material))
    hasher.update(sig.calculate_trailer())
    return hasher.digest()


def _check_signing_key(key):
    if key.key_algorithm != 'EdDSA' or key.curve != 'ed25519':
        raise UnsupportedAlgorithmError("Can not sign with %s key on curve %s" % (key.key_algorithm, key.curve))


def sign_data(sig, key, target, seed):
    """ Fill in hash_head and the (R, S) MPIs of sig """
    _check_signing_key(key)
    digest = hash_signature(sig, key, target)
    signature = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(seed)).sign(digest)
    sig.hash_head = digest[0:2]
    sig.data = [int.from_bytes(signature[:32], 'big'), int.from_bytes(signature[32:], 'big')]
    return sig


def verify_signature(sig, key, target):
    """ True when sig is a valid Ed25519 signature by key over target """
    _check_signing_key(key)
    digest = hash_signature(sig, key, target)
    # Cheap early reject, not the verification itself
    if bytes(sig.hash_head) != digest[0:2] or len(sig.data) != 2:
        return False

    try:
        point = key.point.to_bytes(33, 'big')
        if point[0:1] != b'\x40':
            return False
        public = ed25519.Ed25519PublicKey.from_public_bytes(point[1:])
        public.verify(sig.data[0].to_bytes(32, 'big') + sig.data[1].to_bytes(32, 'big'), digest)
    except (InvalidSignature, OverflowError, ValueError):
        return False

    return True


def verified_signatures(message):
    """ Like Message.signatures(), keeping only the signatures that verify """
    vsigned = []
    for key, target, sigs in message.signatures():
        vsigs = [sig for sig in sigs if key is not None and target is not None and verify_signature(sig, key, target)]
        vsigned.append((key, target, vsigs))
    return vsigned


def get_certs(ed_seed, cv_scalar, user, created_at=0):
    ed_packet, cv_packet, fingerprint, key_id = get_public_packets(ed_seed, cv_scalar, created_at)
    user_id = UserIDPacket(user)

    ed_cert = SignaturePacket('certPositive', 'EdDSA', SIGNATURE_HASH, [
        SignaturePacket.IssuerFingerprintPacket(fingerprint),
        SignaturePacket.SignatureCreationTimePacket(created_at),
        SignaturePacket.KeyFlagsPacket(['sign', 'certify']),
        SignaturePacket.PreferredSymmetricAlgorithmsPacket(PREFERRED_SYMMETRIC),
        SignaturePacket.PreferredAEADAlgorithmsPacket(PREFERRED_AEAD),
        SignaturePacket.PreferredHashAlgorithmsPacket(PREFERRED_HASH),
        SignaturePacket.PreferredCompressionAlgorithmsPacket(PREFERRED_COMPRESSION),
        SignaturePacket.FeaturesPacket(FEATURES),
        SignaturePacket.KeyServerPreferencesPacket(True),
    ], [SignaturePacket.IssuerPacket(key_id)])
    sign_data(ed_cert, ed_packet, user_id, ed_seed)

    cv_cert = SignaturePacket('subkeyBinding', 'EdDSA', SIGNATURE_HASH, [
        SignaturePacket.IssuerFingerprintPacket(fingerprint),
        SignaturePacket.SignatureCreationTimePacket(created_at),
        SignaturePacket.KeyFlagsPacket(['encrypt', 'encryptComm']),
    ], [SignaturePacket.IssuerPacket(key_id)])
    sign_data(cv_cert, ed_packet, cv_packet, ed_seed)

    return ed_packet, user_id, ed_cert, cv_packet, cv_cert


def _passphrase_bytes(passphrase):
    """ Private copy of a str, bytes or SecureBytes passphrase """
    if isinstance(passphrase, SecureBytes):
        return passphrase.with_buffer(SecureBytes)
    if hasattr(passphrase, 'encode'):
        return SecureBytes.from_string(passphrase)
    return SecureBytes(passphrase)


class KeyProtector(object):
    """ Encrypts secret key material under one passphrase.

        Keeps the passphrase and every derived key in wipeable buffers until
        close(), so several keys can be exported without re-entering it.
        Use as a context manager.
    """
    def __init__(self, passphrase, hash_algorithm=DEFAULT_S2K_HASH, count=DEFAULT_S2K_COUNT,
                 symmetric_algorithm=DEFAULT_CIPHER):
        self._passphrase = SecureBytes(b'')
        self._keys = {}
        get_cipher(symmetric_algorithm)
        if hash_algorithm not in OpenPGPKeygen.hash_constructors:
            raise UnsupportedAlgorithmError("Unsupported S2K hash: %r" % (hash_algorithm,))
        if not 0 <= count <= 255:
            raise InvalidParameterError("S2K count must be a single octet: %r" % (count,))
        self.hash_algorithm = hash_algorithm
        self.count = count
        self.symmetric_algorithm = symmetric_algorithm
        self._passphrase = _passphrase_bytes(passphrase)

    def derive(self, salt):
        """ Symmetric key for salt, derived once and cached """
        if salt not in self._keys:
            key_bytes = OpenPGPKeygen.symmetric_key_sizes[self.symmetric_algorithm]
            log.debug("Deriving %s key with %s S2K, count %d", self.symmetric_algorithm,
                      self.hash_algorithm, self.count)
            self._keys[salt] = SecureBytes.adopt(self._passphrase.with_buffer(
                lambda passphrase: OpenPGPKeygen.derive_key(self.hash_algorithm, key_bytes, passphrase,
                                                            salt, self.count)))
        return self._keys[salt]

    def protect(self, public, secret, salt=None, iv=None):
        """ Secret(Sub)KeyPacket holding secret, stored the way GnuPG does:
            opaque MPI followed by its SHA-1, encrypted with AES-CFB.
        """
        salt = get_random_bytes(8) if salt is None else bytes(salt)
        iv = get_random_bytes(16) if iv is None else bytes(iv)
        if len(salt) != 8:
            raise InvalidParameterError("S2K salt must be 8 bytes")
        if len(iv) != 16:
            raise InvalidParameterError("IV must be 16 bytes")

        key = self.derive(salt)
        clear = bytearray(pack('!H', len(secret) * 8))
        clear += secret
        clear += hashlib.sha1(clear).digest()
        try:
            encrypted = key.with_buffer(lambda k: aes_cfb(self.symmetric_algorithm, clear, k, iv))
        finally:
            wipe(clear)

        klass = SecretSubkeyPacket if isinstance(public, PublicSubkeyPacket) else SecretKeyPacket
        s2k = S2K(salt, self.hash_algorithm, self.count, 'iterated')
        return klass(public, 'encrypted', self.symmetric_algorithm, s2k, iv, bytes(encrypted))

    def close(self):
        """ Wipe the passphrase and all derived keys. Idempotent. """
        self._passphrase.clear()
        for key in self._keys.values():
            key.clear()
        self._keys = {}

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()

    def __del__(self):
        self.close()


def format_public(ed_seed, cv_scalar, user, created_at=0):
    ed_packet, user_id, ed_cert, cv_packet, cv_cert = get_certs(ed_seed, cv_scalar, user, created_at)
    message = OpenPGPKeygen.Message([ed_packet, user_id, ed_cert, cv_packet, cv_cert])
    return OpenPGPKeygen.enarmor(message.to_bytes(), 'PUBLIC KEY BLOCK')


def format_private(ed_seed, cv_scalar, user, passphrase, created_at=0,
                   ed_salt=None, ed_iv=None, cv_salt=None, cv_iv=None):
    """ Salts and IVs are random unless given """
    ed_packet, user_id, ed_cert, cv_packet, cv_cert = get_certs(ed_seed, cv_scalar, user, created_at)
    # X25519 scalars are little endian, OpenPGP stores them big endian
    cv_secret = bytearray(reversed(cv_scalar))
    try:
        with KeyProtector(passphrase) as protector:
            ed_secret = protector.protect(ed_packet, ed_seed, ed_salt, ed_iv)
            cv_secret_packet = protector.protect(cv_packet, cv_secret, cv_salt, cv_iv)
    finally:
        wipe(cv_secret)

    message = OpenPGPKeygen.Message([ed_secret, user_id, ed_cert, cv_secret_packet, cv_cert])
    return OpenPGPKeygen.enarmor(message.to_bytes(), 'PRIVATE KEY BLOCK')


def get_key_id(seed, created_at=0):
    """ Fingerprint and key id without the slow S2K of a full export.
        The key id depends on the creation time.
    """
    head, prefix = extended_private_key(seed)
    try:
        _, _, fingerprint, key_id = get_public_packets(seed, head, created_at)
    finally:
        wipe(head)
        wipe(prefix)
    log.debug("Derived key id %s", key_id)
    return KeyId(fingerprint, key_id)


def get_keys(seed, user, passphrase, created_at=0):
    """ Armored public and private key blocks for an Ed25519 seed.

        The encryption subkey is the X25519 key whose scalar is the clamped
        head of the seed's expanded private key. Private key export runs the
        iterated S2K and is therefore slow; use get_key_id() when only the id
        is needed.
    """
    head, prefix = extended_private_key(seed)
    try:
        _, _, _, key_id = get_public_packets(seed, head, created_at)
        public_key = format_public(seed, head, user, created_at)
        private_key = format_private(seed, head, user, passphrase, created_at)
    finally:
        wipe(head)
        wipe(prefix)
    log.debug("Generated key %s", key_id)
    return Keys(key_id, public_key, private_key)


def decode_secret_key(passphrase, packet):
    """ Raw secret scalar (as an int) from a Secret(Sub)KeyPacket """
    if packet.key_algorithm not in SECRET_KEY_ALGORITHMS:
        raise UnsupportedAlgorithmError("Unsupported public key algorithm: %r" % (packet.key_algorithm,))
    if packet.s2k_usage == 'plain':
        return OpenPGPKeygen.decode_checksummed_mpi(packet.secret)

    key_bytes = OpenPGPKeygen.symmetric_key_sizes.get(packet.symmetric_algorithm)
    if not key_bytes:
        raise UnsupportedAlgorithmError("Unknown encryption mode: %r" % (packet.symmetric_algorithm,))

    with _passphrase_bytes(passphrase) as secure_passphrase:
        key = secure_passphrase.with_buffer(lambda p: packet.s2k.make_key(p, key_bytes))
    decrypted = bytearray()
    try:
        decrypted = aes_cfb(packet.symmetric_algorithm, packet.secret, key, packet.iv, decrypt=True)
        if packet.s2k_usage == 'encrypted':
            if len(decrypted) < 20:
                raise ChecksumError("Secret key material too short")
            with memoryview(decrypted) as view:
                material, chk = view[:-20], view[-20:]
                try:
                    if not hmac.compare_digest(hashlib.sha1(material).digest(), chk):
                        raise ChecksumError("Invalid SHA-1 checksum for secret key")
                    return OpenPGPKeygen.decode_mpi(material)
                finally:
                    material.release()
                    chk.release()
        # 'encrypted2' keys carry the two octet checksum instead
        return OpenPGPKeygen.decode_checksummed_mpi(decrypted)
    finally:
        wipe(key)
        wipe(decrypted)
