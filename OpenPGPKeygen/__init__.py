# Pure Python codec for OpenPGP key material <http://tools.ietf.org/html/rfc4880>
# ECC keys: http://tools.ietf.org/html/rfc6637
# EdDSA keys: https://www.ietf.org/archive/id/draft-koch-eddsa-for-openpgp-04.txt

from struct import pack, unpack
import base64
import binascii
import hashlib
import logging
import re

from Crypto.Hash import MD5, RIPEMD160, SHA1, SHA224, SHA256, SHA384, SHA512, SHA3_256, SHA3_512

from OpenPGPKeygen.secure import wipe

log = logging.getLogger(__name__)


class OpenPGPException(Exception):
    pass # Everything inherited

class PacketDecodeError(OpenPGPException):
    """ Malformed wire input """

class UnknownEnumValueError(PacketDecodeError):
    pass

class ArmorError(PacketDecodeError):
    pass

class ChecksumError(OpenPGPException):
    """ Additive checksum, SHA-1 or CRC-24 mismatch """

class UnsupportedAlgorithmError(OpenPGPException):
    pass

class InvalidParameterError(OpenPGPException, ValueError):
    pass


class EnumTable(object):
    """ Closed mapping between wire values and symbolic names """
    def __init__(self, kind, values):
        self.kind = kind
        self.values = dict(values)
        self.names = dict((v, k) for k, v in self.values.items())

    def name(self, value):
        try:
            return self.names[value]
        except KeyError:
            raise UnknownEnumValueError("Unknown %s: %r" % (self.kind, value))

    def value(self, name):
        try:
            return self.values[name]
        except KeyError:
            raise UnknownEnumValueError("Unknown %s: %r" % (self.kind, name))

    def __contains__(self, name):
        return name in self.values

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.kind)

# Only elliptic curve algorithms, RSA/ElGamal/DSA keys are not supported
public_key_algorithms = EnumTable('public-key algorithm', {
    'ECDH': 18,
    'ECDSA': 19,
    'EdDSA': 22,
})

# http://tools.ietf.org/html/rfc6637#section-11
curves = {
    'nistP256': '1.2.840.10045.3.1.7',
    'nistP384': '1.3.132.0.34',
    'nistP521': '1.3.132.0.35',
    'brainpoolP256r1': '1.3.36.3.3.2.8.1.1.7',
    'brainpoolP384r1': '1.3.36.3.3.2.8.1.1.11',
    'brainpoolP512r1': '1.3.36.3.3.2.8.1.1.13',
    'secp256k1': '1.3.132.0.10',
    'curve25519': '1.3.6.1.4.1.3029.1.5.1',
    'ed25519': '1.3.6.1.4.1.11591.15.1',
}
curve_names = dict((v, k) for k, v in curves.items())

# http://tools.ietf.org/html/rfc4880#section-9.4
hash_algorithms = EnumTable('hash algorithm', {
    'md5': 1,
    'sha1': 2,
    'ripemd160': 3,
    'sha256': 8,
    'sha384': 9,
    'sha512': 10,
    'sha224': 11,
    'sha3_256': 12,
    'sha3_512': 14,
})

hash_constructors = {
    'md5': MD5,
    'sha1': SHA1,
    'ripemd160': RIPEMD160,
    'sha224': SHA224,
    'sha256': SHA256,
    'sha384': SHA384,
    'sha512': SHA512,
    'sha3_256': SHA3_256,
    'sha3_512': SHA3_512,
}

# http://tools.ietf.org/html/rfc4880#section-9.2
symmetric_algorithms = EnumTable('symmetric algorithm', {
    'plaintext': 0,
    'idea': 1,
    'tripledes': 2,
    'cast5': 3,
    'blowfish': 4,
    'aes128': 7,
    'aes192': 8,
    'aes256': 9,
    'twofish': 10,
})

# Everything else is encode-only
symmetric_key_sizes = {
    'plaintext': 0,
    'aes128': 16,
    'aes192': 24,
    'aes256': 32,
}

# http://tools.ietf.org/html/rfc4880#section-9.3
compression_algorithms = EnumTable('compression algorithm', {
    'uncompressed': 0,
    'zip': 1,
    'zlib': 2,
    'bzip2': 3,
})

# https://datatracker.ietf.org/doc/html/draft-ietf-openpgp-rfc4880bis-10#section-9.6
aead_algorithms = EnumTable('AEAD algorithm', {
    'None': 0,
    'EAX': 1,
    'OCB': 2,
})

# http://tools.ietf.org/html/rfc4880#section-3.7.1
s2k_types = EnumTable('S2K type', {
    'simple': 0,
    'salted': 1,
    'iterated': 3,
})

# http://tools.ietf.org/html/rfc4880#section-5.2.1
signature_types = EnumTable('signature type', {
    'binary': 0x00,
    'text': 0x01,
    'standalone': 0x02,
    'certGeneric': 0x10,
    'certPersona': 0x11,
    'certCasual': 0x12,
    'certPositive': 0x13,
    'subkeyBinding': 0x18,
    'keyBinding': 0x19,
    'key': 0x1f,
    'keyRevocation': 0x20,
    'subkeyRevocation': 0x28,
    'certRevocation': 0x30,
    'timestamp': 0x40,
    'thirdParty': 0x50,
})

certification_types = ('certGeneric', 'certPersona', 'certCasual', 'certPositive')

# http://tools.ietf.org/html/rfc4880#section-5.2.3.1
subpacket_type_names = EnumTable('signature subpacket type', {
    'signatureCreationTime': 2,
    'signatureExpirationTime': 3,
    'exportableCertification': 4,
    'trustSignature': 5,
    'regularExpression': 6,
    'revocable': 7,
    'keyExpirationTime': 9,
    'placeholderBackwardsCompatibility': 10,
    'preferredEncryptionAlgorithms': 11,
    'revocationKey': 12,
    'issuer': 16,
    'notationData': 20,
    'preferredHashAlgorithms': 21,
    'preferredCompressionAlgorithms': 22,
    'keyServerPreferences': 23,
    'preferredKeyServer': 24,
    'primaryUserID': 25,
    'policyURI': 26,
    'keyFlags': 27,
    'signersUserID': 28,
    'reasonForRevocation': 29,
    'features': 30,
    'signatureTarget': 31,
    'embeddedSignature': 32,
    'issuerFingerprint': 33,
    'preferredAEADAlgorithms': 34,
    'intendedRecipientFingerprint': 35,
    'attestedCertifications': 37,
    'keyBlock': 38,
})

# http://tools.ietf.org/html/rfc4880#section-4.3
packet_tags = EnumTable('packet tag', {
    'publicKeyEncryptedSessionKey': 1,
    'signature': 2,
    'symmetricKeyEncryptedSessionKey': 3,
    'onePassSignature': 4,
    'secretKey': 5,
    'publicKey': 6,
    'secretSubkey': 7,
    'compressedData': 8,
    'encryptedData': 9,
    'marker': 10,
    'literalData': 11,
    'trust': 12,
    'userId': 13,
    'publicSubkey': 14,
    'userAttribute': 17,
    'encryptedProtectedData': 18,
    'modificationDetectionCode': 19,
})

# http://tools.ietf.org/html/rfc4880#section-5.5.3
# Other usage octets (a bare cipher id) are not supported
secret_key_usages = EnumTable('secret key usage', {
    'plain': 0,
    'encrypted': 254,
    'encrypted2': 255,
})


class ByteReader(object):
    """ Cursor over an in-memory byte string """
    def __init__(self, data):
        self.data = bytes(data)
        self.offset = 0

    def remaining(self):
        return len(self.data) - self.offset

    def at_end(self):
        return self.offset >= len(self.data)

    def read(self, count):
        if count < 0 or count > self.remaining():
            raise PacketDecodeError("Not enough bytes: wanted %d, have %d" % (count, self.remaining()))
        chunk = self.data[self.offset:self.offset + count]
        self.offset += count
        return chunk

    def read_rest(self):
        return self.read(self.remaining())

    def read_byte(self):
        return self.read(1)[0]

    def read_unpacked(self, count, fmt):
        """ http://docs.python.org/library/struct.html """
        return unpack(fmt, self.read(count))[0]

    def read_mpi(self):
        """ http://tools.ietf.org/html/rfc4880#section-3.2 """
        length = self.read_unpacked(2, '!H') # length in bits
        return int.from_bytes(self.read((length + 7) >> 3), 'big')

    def expect_end(self, what):
        if not self.at_end():
            raise PacketDecodeError("%d unexpected trailing bytes in %s" % (self.remaining(), what))


def mpi_bytes(value):
    """ http://tools.ietf.org/html/rfc4880#section-3.2
        Bit count followed by the minimal big-endian representation.
    """
    if value < 0:
        raise InvalidParameterError("MPI must be non-negative")
    bits = value.bit_length()
    if bits > 0xffff:
        raise InvalidParameterError("MPI too large: %d bits" % bits)
    return pack('!H', bits) + value.to_bytes((bits + 7) >> 3, 'big')


def opaque_mpi_bytes(data):
    """ GnuPG stores secret ECC scalars as MPIs without stripping leading
        zero bytes, so the bit count always covers the whole buffer.
        https://www.mhonarc.org/archive/html/ietf-openpgp/2019-10/msg00041.html
    """
    if len(data) * 8 > 0xffff:
        raise InvalidParameterError("Opaque MPI too large: %d bytes" % len(data))
    return pack('!H', len(data) * 8) + bytes(data)


def decode_mpi(data):
    """ MPI filling the whole of data, strict or opaque.
        Reads through a memoryview so decrypted secrets are never copied.
    """
    with memoryview(data) as view:
        if len(view) < 2:
            raise PacketDecodeError("MPI too short")
        length = (view[0] << 8) | view[1] # length in bits
        if (length + 7) >> 3 != len(view) - 2:
            raise PacketDecodeError("MPI of %d bits in %d bytes" % (length, len(view) - 2))
        value = view[2:]
        try:
            return int.from_bytes(value, 'big')
        finally:
            value.release()


def encode_oid(oid):
    """ ASN.1 object identifier without tag and length octets.
        The first two arcs share one octet (arc0 * 40 + arc1), the others
        are base 128 with the high bit set on all but the last octet.
    """
    try:
        arcs = [int(arc) for arc in oid.split('.')]
    except (AttributeError, ValueError):
        raise InvalidParameterError("Invalid OID: %r" % (oid,))
    if any(arc < 0 for arc in arcs):
        raise InvalidParameterError("Invalid OID: %r" % (oid,))

    first = arcs[0] * 40
    if len(arcs) > 1:
        first += arcs[1]
    if first > 255:
        raise InvalidParameterError("Invalid OID: %r" % (oid,))

    out = bytearray([first])
    for arc in arcs[2:]:
        chunk = [arc & 0x7f]
        arc >>= 7
        while arc:
            chunk.insert(0, (arc & 0x7f) | 0x80)
            arc >>= 7
        out += bytearray(chunk)
    return bytes(out)


def decode_oid(data):
    if not data:
        raise PacketDecodeError("Empty OID")
    arcs = [str(data[0] // 40), str(data[0] % 40)]
    num = 0
    partial = False
    for byte in bytearray(data[1:]):
        num = (num << 7) | (byte & 0x7f)
        partial = bool(byte & 0x80)
        if not partial:
            arcs.append(str(num))
            num = 0
    if partial:
        raise PacketDecodeError("Truncated OID: %r" % (data,))
    return '.'.join(arcs)


def encode_length(length):
    """ http://tools.ietf.org/html/rfc4880#section-4.2.2 """
    if length < 0:
        raise InvalidParameterError("Negative length: %d" % length)
    if length < 192: # One octet length
        return pack('!B', length)
    if length <= 8383: # Two octet length
        length -= 192
        return pack('!BB', (length >> 8) + 192, length & 0xff)
    if length < 2 ** 32: # Five octet length
        return pack('!B', 255) + pack('!L', length)
    raise InvalidParameterError("Length is too big: %d" % length)


def read_length(reader):
    first = reader.read_byte()
    if first < 192:
        return first
    if first < 224:
        return ((first - 192) << 8) + reader.read_byte() + 192
    if first == 255:
        return reader.read_unpacked(4, '!L')
    raise PacketDecodeError("Partial body lengths are not supported")


def checksum(data):
    """ Two octet additive checksum of http://tools.ietf.org/html/rfc4880#section-5.5.3 """
    return sum(memoryview(data)) % 65536


def decode_checksummed_mpi(material):
    """ MPI followed by its additive checksum, as stored by unprotected
        secret keys (and inside 'encrypted2' ones).
    """
    if len(material) < 2:
        raise PacketDecodeError("Secret key material too short")
    with memoryview(material) as view:
        data = view[:-2]
        try:
            if checksum(data) != (view[-2] << 8) | view[-1]:
                raise ChecksumError("Checksum verification failed for plain secret key material")
            return decode_mpi(data)
        finally:
            data.release()


def _curve_oid(curve):
    return curves.get(curve, curve)


def _timestamp_bytes(timestamp):
    if not 0 <= timestamp < 2 ** 32:
        raise InvalidParameterError("Timestamp does not fit in 32 bits: %r" % (timestamp,))
    return pack('!L', timestamp)


def decode_s2k_count(c):
    """ Expand the one octet iteration count of iterated and salted S2K """
    return (16 + (c & 15)) << ((c >> 4) + 6)


def derive_key(hash_algorithm, size, passphrase, salt=None, count=None):
    """ http://tools.ietf.org/html/rfc4880#section-3.7.1

        Hash salt + passphrase, repeated up to the expanded count, once per
        output block, each block prefixed by one more zero octet than the
        last. Without a count the data is hashed exactly once, which covers
        the simple and salted variants.

        Returns a bytearray the caller is expected to wipe.
    """
    try:
        hasher = hash_constructors[hash_algorithm]
    except KeyError:
        raise UnsupportedAlgorithmError("Unsupported S2K hash: %r" % (hash_algorithm,))

    data = bytearray(salt or b'')
    data += passphrase
    total = max(0 if count is None else decode_s2k_count(count), len(data))
    block = bytearray()
    if data:
        block = data * max(1, S2K.BLOCK_SIZE // len(data))

    out = bytearray()
    try:
        prefix = 0
        while len(out) < size:
            h = hasher.new()
            h.update(b'\0' * prefix)
            if block:
                full, rest = divmod(total, len(block))
                view = memoryview(block)
                for _ in range(full):
                    h.update(view)
                h.update(view[:rest])
                view.release()
            out += h.digest()
            prefix += 1
        del out[size:]
        return out
    finally:
        wipe(data)
        wipe(block)


class S2K(object):
    """ String-to-key specifier.
        http://tools.ietf.org/html/rfc4880#section-3.7
    """
    BLOCK_SIZE = 65536

    def __init__(self, salt = None, hash_algorithm = 'sha1', count = 240, type = 'iterated'):
        s2k_types.value(type)
        hash_algorithms.value(hash_algorithm)
        if type == 'simple':
            salt = count = None
        elif type == 'salted':
            count = None
        if type != 'simple' and (salt is None or len(salt) != 8):
            raise InvalidParameterError("S2K salt must be 8 bytes")
        if count is not None and not 0 <= count <= 255:
            raise InvalidParameterError("S2K count must be a single octet: %r" % (count,))
        self.type = type
        self.hash_algorithm = hash_algorithm
        self.salt = salt and bytes(salt)
        self.count = count

    def to_bytes(self):
        bs = pack('!B', s2k_types.value(self.type))
        bs += pack('!B', hash_algorithms.value(self.hash_algorithm))
        if self.type in ['salted', 'iterated']:
            bs += self.salt
        if self.type == 'iterated':
            bs += pack('!B', self.count)
        return bs

    def make_key(self, passphrase, size):
        return derive_key(self.hash_algorithm, size, passphrase, self.salt, self.count)

    @classmethod
    def parse(cls, reader):
        s2k_type = s2k_types.name(reader.read_byte())
        hash_algorithm = hash_algorithms.name(reader.read_byte())
        salt = count = None
        if s2k_type in ['salted', 'iterated']:
            salt = reader.read(8)
        if s2k_type == 'iterated':
            count = reader.read_byte()
        return cls(salt, hash_algorithm, count, s2k_type)

    def __repr__(self):
        return "%s(type=%r, hash_algorithm=%r, count=%r)" % (type(self).__name__, self.type, self.hash_algorithm, self.count)

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __ne__(self, other):
        return not self.__eq__(other)


class Message(object):
    """ Represents an OpenPGP key block (sequence of packets)
        http://tools.ietf.org/html/rfc4880#section-4.1
        http://tools.ietf.org/html/rfc4880#section-11.1
        http://tools.ietf.org/html/rfc4880#section-11.2
    """
    @classmethod
    def parse(cls, input_data):
        reader = ByteReader(input_data)
        packets = []
        while not reader.at_end():
            packets.append(Packet.parse(reader))
        log.debug("Parsed %d packets", len(packets))
        return cls(packets)

    def __init__(self, packets = None):
        self._packets = list(packets or [])

    def to_bytes(self):
        return b''.join(p.to_bytes() for p in self)

    def signatures(self):
        """ Group a key block into (key, target, signatures) triples, where
            target is the user ID or subkey being certified.
            http://tools.ietf.org/html/rfc4880#section-11.1
        """
        key = None
        target = None
        sigs = []
        final_sigs = []

        for p in self:
            if isinstance(p, (PublicKeyPacket, UserIDPacket)):
                if target is not None or sigs:
                    final_sigs.append((key, target, sigs))
                sigs = []
                if isinstance(p, (UserIDPacket, PublicSubkeyPacket, SecretSubkeyPacket)):
                    target = p
                else: # A new primary key
                    key = p
                    target = None
            elif isinstance(p, SignaturePacket):
                sigs.append(p)

        if target is not None or sigs:
            final_sigs.append((key, target, sigs))

        return final_sigs

    def __iter__(self):
        return iter(self._packets)

    def __getitem__(self, item):
        return self._packets[item]

    def __len__(self):
        return len(self._packets)

    def __repr__(self):
        return "%s: %r" % (type(self), self._packets)

    def __eq__(self, other):
        if type(other) is type(self):
            return self._packets == other._packets
        return False

    def __ne__(self, other):
        return not self.__eq__(other)


class Packet(object):
    """ OpenPGP packet.
        http://tools.ietf.org/html/rfc4880#section-4.1
        http://tools.ietf.org/html/rfc4880#section-4.3
    """

    @classmethod
    def parse(cls, reader):
        """ Only old-format (PGP 2.6.x) headers are read, which is what
            GnuPG still writes for key material.
            http://tools.ietf.org/html/rfc4880#section-4.2.1
        """
        header = reader.read_byte()
        if not header & 0x80:
            raise PacketDecodeError("Invalid packet header: %#04x" % header)
        if header & 0x40:
            raise PacketDecodeError("New format packet headers are not supported")

        tag = packet_tags.name((header >> 2) & 15)
        length_type = header & 3
        if length_type == 0: # The packet has a one-octet length
            data_length = reader.read_byte()
        elif length_type == 1: # The packet has a two-octet length
            data_length = reader.read_unpacked(2, '!H')
        elif length_type == 2: # The packet has a four-octet length
            data_length = reader.read_unpacked(4, '!L')
        else: # The packet is of indeterminate length
            data_length = reader.remaining()

        try:
            packet_class = Packet.tags[tag]
        except KeyError:
            raise PacketDecodeError("Unsupported packet: %s" % tag)

        packet = packet_class()
        packet.input = ByteReader(reader.read(data_length))
        packet.read()
        packet.input.expect_end(tag)
        packet.input = None
        return packet

    def __init__(self, data = None):
        self.tag = None
        for tag in self.tag_table():
            if self.tag_table()[tag] is self.__class__:
                self.tag = tag
                break
        self.data = data
        self.input = None

    @classmethod
    def tag_table(cls):
        return Packet.tags

    def read(self):
        # Will normally be overridden by subclasses
        self.data = self.read_rest()

    def body(self):
        return self.data # Will normally be overridden by subclasses

    def header_and_body(self):
        body = self.body() # Get body first, we will need its length
        tag = packet_tags.value(self.tag)
        if tag > 15:
            raise InvalidParameterError("Tag %s does not fit an old format header" % self.tag)
        if len(body) < 2 ** 8:
            length_type, size = 0, pack('!B', len(body))
        elif len(body) < 2 ** 16:
            length_type, size = 1, pack('!H', len(body))
        elif len(body) < 2 ** 32:
            length_type, size = 2, pack('!L', len(body))
        else:
            raise InvalidParameterError("Packet body too large: %d" % len(body))
        header = pack('!B', 0x80 | (tag << 2) | length_type)
        return {'header': header + size, 'body': body}

    def to_bytes(self):
        data = self.header_and_body()
        return data['header'] + data['body']

    def read_timestamp(self):
        """ http://tools.ietf.org/html/rfc4880#section-3.5 """
        return self.read_unpacked(4, '!L')

    def read_mpi(self):
        return self.input.read_mpi()

    def read_unpacked(self, count, fmt):
        return self.input.read_unpacked(count, fmt)

    def read_byte(self):
        return self.input.read_byte()

    def read_bytes(self, count):
        return self.input.read(count)

    def read_rest(self):
        return self.input.read_rest()

    @property
    def length(self):
        return self.input.remaining()

    tags = {} # Actual data at end of file

    def _state(self):
        return dict((k, v) for k, v in self.__dict__.items() if k not in ('input', '_fingerprint'))

    def __repr__(self):
        return "%s: %r" % (type(self), self._state())

    def __eq__(self, other):
        if type(other) is type(self):
            return self._state() == other._state()
        return False

    def __ne__(self, other):
        return not self.__eq__(other)


class SignaturePacket(Packet):
    """ OpenPGP Signature packet (tag 2), version 4 only.
        http://tools.ietf.org/html/rfc4880#section-5.2
        http://tools.ietf.org/html/rfc4880#section-5.2.3
    """
    def __init__(self, signature_type = 'binary', key_algorithm = 'EdDSA', hash_algorithm = 'sha512',
                 hashed_subpackets = None, unhashed_subpackets = None, hash_head = b'\0\0', data = None):
        super(SignaturePacket, self).__init__()
        self.version = 4
        self.signature_type = signature_type
        self.key_algorithm = key_algorithm
        self.hash_algorithm = hash_algorithm
        self.hashed_subpackets = list(hashed_subpackets or [])
        self.unhashed_subpackets = list(unhashed_subpackets or [])
        self.hash_head = hash_head
        self.data = list(data or []) # Signature MPIs

    def read(self):
        self.version = self.read_byte()
        if self.version != 4:
            raise PacketDecodeError("Unsupported signature version: %d" % self.version)
        self.signature_type = signature_types.name(self.read_byte())
        self.key_algorithm = public_key_algorithms.name(self.read_byte())
        self.hash_algorithm = hash_algorithms.name(self.read_byte())

        hashed_size = self.read_unpacked(2, '!H')
        self.hashed_subpackets = self.get_subpackets(self.read_bytes(hashed_size))
        unhashed_size = self.read_unpacked(2, '!H')
        self.unhashed_subpackets = self.get_subpackets(self.read_bytes(unhashed_size))

        self.hash_head = self.read_bytes(2)
        self.data = []
        while self.length > 0:
            self.data.append(self.read_mpi())

    def body_start(self):
        """ The hashed part of the body: version, types and hashed subpackets """
        body = pack('!B', self.version) + pack('!B', signature_types.value(self.signature_type)) + \
            pack('!B', public_key_algorithms.value(self.key_algorithm)) + \
            pack('!B', hash_algorithms.value(self.hash_algorithm))

        hashed_subpackets = b''.join(p.to_bytes() for p in self.hashed_subpackets)
        return body + pack('!H', len(hashed_subpackets)) + hashed_subpackets

    def calculate_trailer(self):
        """ http://tools.ietf.org/html/rfc4880#section-5.2.4 """
        body = self.body_start()
        return body + pack('!B', 4) + pack('!B', 0xff) + pack('!L', len(body))

    def body(self):
        body = self.body_start()

        unhashed_subpackets = b''.join(p.to_bytes() for p in self.unhashed_subpackets)
        body += pack('!H', len(unhashed_subpackets)) + unhashed_subpackets

        if len(self.hash_head) != 2:
            raise InvalidParameterError("Hash prefix must be 2 bytes")
        body += bytes(self.hash_head)
        for mpi in self.data:
            body += mpi_bytes(mpi)

        return body

    def _find_subpacket(self, klass):
        for p in self.hashed_subpackets + self.unhashed_subpackets:
            if isinstance(p, klass):
                return p
        return None

    def issuer(self):
        p = self._find_subpacket(self.IssuerPacket)
        return p and p.data

    def issuer_fingerprint(self):
        p = self._find_subpacket(self.IssuerFingerprintPacket)
        return p and p.data

    @classmethod
    def get_subpackets(cls, input_data):
        reader = ByteReader(input_data)
        subpackets = []
        while not reader.at_end():
            subpackets.append(cls.get_subpacket(reader))
        return subpackets

    @classmethod
    def get_subpacket(cls, reader):
        length = read_length(reader)
        if length < 1:
            raise PacketDecodeError("Empty signature subpacket")
        body = reader.read(length)
        tag = subpacket_type_names.name(body[0])

        klass = cls.subpacket_types.get(tag, SignaturePacket.Subpacket)
        packet = klass()
        packet.tag = tag
        packet.input = ByteReader(body[1:])
        packet.read()
        packet.input.expect_end(tag)
        packet.input = None
        return packet

    class Subpacket(Packet):
        """ Subpacket kept as raw bytes """
        def __init__(self, data = b'', tag = None):
            super(SignaturePacket.Subpacket, self).__init__(data)
            self.tag = tag or self.tag

        @classmethod
        def tag_table(cls):
            return SignaturePacket.subpacket_types

        def header_and_body(self):
            body = self.body() # Get body first, we'll need its length
            size = encode_length(len(body) + 1) # + 1 for tag as first subpacket body octet
            tag = pack('!B', subpacket_type_names.value(self.tag))
            return {'header': size + tag, 'body': body}

    class SignatureCreationTimePacket(Subpacket):
        """ http://tools.ietf.org/html/rfc4880#section-5.2.3.4 """
        def __init__(self, time = 0):
            super(SignaturePacket.SignatureCreationTimePacket, self).__init__(int(time))

        def read(self):
            self.data = self.read_timestamp()

        def body(self):
            return _timestamp_bytes(self.data)

    class IssuerPacket(Subpacket):
        """ http://tools.ietf.org/html/rfc4880#section-5.2.3.5 """
        def __init__(self, keyid = '0' * 16):
            super(SignaturePacket.IssuerPacket, self).__init__(keyid)

        def read(self):
            self.data = self.read_bytes(8).hex() # Store KeyID in Hex

        def body(self):
            b = bytes.fromhex(self.data)
            if len(b) != 8:
                raise InvalidParameterError("Key ID must be 8 bytes: %r" % self.data)
            return b

    class IssuerFingerprintPacket(Subpacket):
        """ https://datatracker.ietf.org/doc/html/draft-ietf-openpgp-rfc4880bis-10#section-5.2.3.28 """
        def __init__(self, fingerprint = '0' * 40):
            super(SignaturePacket.IssuerFingerprintPacket, self).__init__(fingerprint)

        def read(self):
            version = self.read_byte()
            if version != 4:
                raise PacketDecodeError("Unsupported issuer fingerprint version: %d" % version)
            self.data = self.read_bytes(20).hex()

        def body(self):
            b = bytes.fromhex(self.data)
            if len(b) != 20:
                raise InvalidParameterError("Fingerprint must be 20 bytes: %r" % self.data)
            return pack('!B', 4) + b

    class PreferencesPacket(Subpacket):
        """ Ordered list of algorithm names """
        table = None

        def __init__(self, data = ()):
            super(SignaturePacket.PreferencesPacket, self).__init__(list(data))

        def read(self):
            self.data = [self.table.name(b) for b in self.read_rest()]

        def body(self):
            return b''.join(pack('!B', self.table.value(algo)) for algo in self.data)

    class PreferredSymmetricAlgorithmsPacket(PreferencesPacket):
        table = symmetric_algorithms

    class PreferredHashAlgorithmsPacket(PreferencesPacket):
        table = hash_algorithms

    class PreferredCompressionAlgorithmsPacket(PreferencesPacket):
        table = compression_algorithms

    class PreferredAEADAlgorithmsPacket(PreferencesPacket):
        table = aead_algorithms

    class KeyFlagsPacket(Subpacket):
        """ http://tools.ietf.org/html/rfc4880#section-5.2.3.21 """
        bits = {
            'certify': 0x01,
            'sign': 0x02,
            'encryptComm': 0x04,
            'encrypt': 0x08,
            'split': 0x10,
            'auth': 0x20,
            'shared': 0x80,
        }

        def __init__(self, flags = ()):
            super(SignaturePacket.KeyFlagsPacket, self).__init__()
            self.flags = set(flags)

        def read(self):
            value = self.read_byte()
            self.flags = set(name for name, bit in self.bits.items() if value & bit)
            unknown = value & ~sum(self.bits.values())
            if unknown:
                raise UnknownEnumValueError("Unknown %s bits: %#04x" % (self.tag, unknown))

        def body(self):
            value = 0
            for f in self.flags:
                try:
                    value |= self.bits[f]
                except KeyError:
                    raise UnknownEnumValueError("Unknown %s flag: %r" % (self.tag, f))
            return pack('!B', value)

    class FeaturesPacket(KeyFlagsPacket):
        """ https://datatracker.ietf.org/doc/html/draft-ietf-openpgp-rfc4880bis-10#section-5.2.3.25 """
        bits = {
            'modDetect': 0x01,
            'aead': 0x02,
            'v5Keys': 0x04,
        }

    class KeyServerPreferencesPacket(Subpacket):
        """ http://tools.ietf.org/html/rfc4880#section-5.2.3.17 """
        def __init__(self, no_modify = False):
            super(SignaturePacket.KeyServerPreferencesPacket, self).__init__()
            self.no_modify = no_modify

        def read(self):
            flags = self.read_byte()
            self.no_modify = flags & 0x80 == 0x80

        def body(self):
            return pack('!B', self.no_modify and 0x80 or 0x00)

    class PrimaryUserIDPacket(Subpacket):
        def __init__(self, data = False):
            super(SignaturePacket.PrimaryUserIDPacket, self).__init__(data)

        def read(self):
            self.data = self.read_byte() != 0

        def body(self):
            return pack('!B', self.data and 1 or 0)

    subpacket_types = {
        'signatureCreationTime': SignatureCreationTimePacket,
        'preferredEncryptionAlgorithms': PreferredSymmetricAlgorithmsPacket,
        'issuer': IssuerPacket,
        'preferredHashAlgorithms': PreferredHashAlgorithmsPacket,
        'preferredCompressionAlgorithms': PreferredCompressionAlgorithmsPacket,
        'keyServerPreferences': KeyServerPreferencesPacket,
        'primaryUserID': PrimaryUserIDPacket,
        'keyFlags': KeyFlagsPacket,
        'features': FeaturesPacket,
        'issuerFingerprint': IssuerFingerprintPacket,
        'preferredAEADAlgorithms': PreferredAEADAlgorithmsPacket,
    }


class PublicKeyPacket(Packet):
    """ OpenPGP Public-Key packet (tag 6), version 4 ECC keys.
        http://tools.ietf.org/html/rfc4880#section-5.5.2
        http://tools.ietf.org/html/rfc6637#section-9
        http://tools.ietf.org/html/rfc4880#section-12.2
    """
    def __init__(self, curve = None, point = None, algorithm = 'EdDSA', timestamp = 0,
                 kdf_hash = None, kdf_cipher = None):
        super(PublicKeyPacket, self).__init__()
        self._fingerprint = None
        self.version = 4
        self.timestamp = int(timestamp)
        self.key_algorithm = algorithm
        self.curve = curve
        self.point = point
        self.kdf_hash = kdf_hash
        self.kdf_cipher = kdf_cipher

    def read(self):
        """ http://tools.ietf.org/html/rfc4880#section-5.5.2 """
        self.version = self.read_byte()
        if self.version != 4:
            raise PacketDecodeError("Unsupported key packet version: %d" % self.version)
        self.timestamp = self.read_timestamp()
        self.key_algorithm = public_key_algorithms.name(self.read_byte())
        self.read_key_material()

    def read_key_material(self):
        oid = decode_oid(self.read_bytes(self.read_byte()))
        self.curve = curve_names.get(oid, oid) # Unknown curves are kept as dotted OIDs
        self.point = self.read_mpi()
        if self.key_algorithm == 'ECDH':
            params = ByteReader(self.read_bytes(self.read_byte()))
            if params.read_byte() != 1:
                raise PacketDecodeError("Unsupported ECDH KDF parameters")
            self.kdf_hash = hash_algorithms.name(params.read_byte())
            self.kdf_cipher = symmetric_algorithms.name(params.read_byte())
            params.expect_end('ECDH KDF parameters')

    def key_material(self):
        oid = encode_oid(_curve_oid(self.curve))
        material = pack('!B', len(oid)) + oid + mpi_bytes(self.point)
        if self.key_algorithm == 'ECDH':
            params = pack('!B', 1) + pack('!B', hash_algorithms.value(self.kdf_hash)) + \
                pack('!B', symmetric_algorithms.value(self.kdf_cipher))
            material += pack('!B', len(params)) + params
        return material

    def public_body(self):
        return pack('!B', self.version) + _timestamp_bytes(self.timestamp) + \
            pack('!B', public_key_algorithms.value(self.key_algorithm)) + self.key_material()

    def fingerprint_material(self):
        body = self.public_body()
        return [pack('!B', 0x99), pack('!H', len(body)), body]

    def fingerprint(self):
        """ http://tools.ietf.org/html/rfc4880#section-12.2 """
        if self._fingerprint:
            return self._fingerprint
        self._fingerprint = hashlib.sha1(b''.join(self.fingerprint_material())).hexdigest()
        return self._fingerprint

    def key_id(self):
        return self.fingerprint()[-16:]

    def body(self):
        return self.public_body()

class PublicSubkeyPacket(PublicKeyPacket):
    """ OpenPGP Public-Subkey packet (tag 14).
        http://tools.ietf.org/html/rfc4880#section-5.5.1.2
    """
    pass

class SecretKeyPacket(PublicKeyPacket):
    """ OpenPGP Secret-Key packet (tag 5).
        http://tools.ietf.org/html/rfc4880#section-5.5.3

        `secret` holds the raw trailing bytes: MPI plus checksum for 'plain'
        keys, ciphertext for 'encrypted' (SHA-1 protected) and 'encrypted2'
        (checksum protected) keys.
    """
    public_class = PublicKeyPacket

    def __init__(self, public = None, s2k_usage = 'plain', symmetric_algorithm = None, s2k = None,
                 iv = None, secret = b''):
        super(SecretKeyPacket, self).__init__()
        if public is not None:
            for field in ('version', 'timestamp', 'key_algorithm', 'curve', 'point', 'kdf_hash', 'kdf_cipher'):
                setattr(self, field, getattr(public, field))
        secret_key_usages.value(s2k_usage)
        if iv is not None and len(iv) != 16:
            raise InvalidParameterError("IV must be 16 bytes, got %d" % len(iv))
        self.s2k_usage = s2k_usage
        self.symmetric_algorithm = symmetric_algorithm
        self.s2k = s2k
        self.iv = iv and bytes(iv)
        self.secret = bytes(secret)

    @classmethod
    def plain(cls, public, scalar):
        """ Unprotected secret key: MPI plus additive checksum """
        material = mpi_bytes(scalar)
        return cls(public, 'plain', secret = material + pack('!H', checksum(material)))

    def public_key(self):
        public = self.public_class()
        for field in ('version', 'timestamp', 'key_algorithm', 'curve', 'point', 'kdf_hash', 'kdf_cipher'):
            setattr(public, field, getattr(self, field))
        return public

    def read(self):
        super(SecretKeyPacket, self).read() # All the fields from PublicKey
        self.s2k_usage = secret_key_usages.name(self.read_byte())
        if self.s2k_usage == 'plain':
            self.secret = self.read_rest()
            decode_checksummed_mpi(self.secret)
        else:
            self.symmetric_algorithm = symmetric_algorithms.name(self.read_byte())
            self.s2k = S2K.parse(self.input)
            # IV is one cipher block, only AES is supported
            self.iv = self.read_bytes(16)
            self.secret = self.read_rest()

    def body(self):
        b = self.public_body() + pack('!B', secret_key_usages.value(self.s2k_usage))
        if self.s2k_usage != 'plain':
            if self.iv is None or len(self.iv) != 16:
                raise InvalidParameterError("Encrypted secret key needs a 16 byte IV")
            b += pack('!B', symmetric_algorithms.value(self.symmetric_algorithm))
            b += self.s2k.to_bytes()
            b += self.iv
        return b + self.secret

class SecretSubkeyPacket(SecretKeyPacket):
    """ OpenPGP Secret-Subkey packet (tag 7).
        http://tools.ietf.org/html/rfc4880#section-5.5.1.4
    """
    public_class = PublicSubkeyPacket

class UserIDPacket(Packet):
    """ OpenPGP User ID packet (tag 13).
        http://tools.ietf.org/html/rfc4880#section-5.11
        http://tools.ietf.org/html/rfc2822
    """
    def __init__(self, text = ''):
        super(UserIDPacket, self).__init__()
        self.text = text

    def read(self):
        try:
            self.text = self.read_rest().decode('utf-8')
        except UnicodeDecodeError:
            raise PacketDecodeError("User ID is not valid UTF-8")

    @property
    def name(self):
        return self._parts()[0]

    @property
    def comment(self):
        return self._parts()[1]

    @property
    def email(self):
        return self._parts()[2]

    def _parts(self):
        # User IDs of the form: "name (comment) <email>"
        m = re.match(r'^([^(<]+)\(([^)]+)\)\s+<([^>]+)>$', self.text)
        if m:
            return (m.group(1).strip(), m.group(2).strip(), m.group(3).strip())
        # User IDs of the form: "name <email>" or "<email>"
        m = re.match(r'^([^<]*)<([^>]+)>$', self.text)
        if m:
            return (m.group(1).strip() or None, None, m.group(2).strip())
        return (self.text.strip() or None, None, None)

    def __str__(self):
        return self.text

    def body(self):
        return self.text.encode('utf-8')

Packet.tags = {
    'signature': SignaturePacket,
    'secretKey': SecretKeyPacket,
    'publicKey': PublicKeyPacket,
    'secretSubkey': SecretSubkeyPacket,
    'userId': UserIDPacket,
    'publicSubkey': PublicSubkeyPacket,
}


def crc24(data):
    """
        http://tools.ietf.org/html/rfc4880#section-6
        http://tools.ietf.org/html/rfc4880#section-6.1
    """
    crc = 0x00b704ce
    for byte in bytearray(data):
        crc ^= byte << 16
        for j in range(0, 8):
            crc <<= 1
            if (crc & 0x01000000):
                crc ^= 0x01864cfb
    return crc & 0x00ffffff


def enarmor(data, marker = 'PUBLIC KEY BLOCK', headers = None, lineWidth = 64, checksum = True):
    """
    @see http://tools.ietf.org/html/rfc4880#section-6.2 OpenPGP Message Format / Ascii Armor
    @see http://tools.ietf.org/html/rfc2045 Base64 encoding

    @param data: binary data to encode
    @type  data: bytes

    @param marker: PUBLIC KEY BLOCK or PRIVATE KEY BLOCK
    @type  marker: str

    @param headers: key value, e.g {'Comment' : 'ed25519'}
    @type  headers: None | dict | [(str, str)]

    @param lineWidth: GnuPG uses 64, RFC4880 limits to 76
    @type  lineWidth: int

    @param checksum: append the CRC-24 line
    @type  checksum: bool

    @rtype: str
    """
    if lineWidth <= 0:
        raise InvalidParameterError("lineWidth must be positive")

    def _iter_enarmor(data):
        yield '-----BEGIN PGP ' + str(marker).upper() + '-----'
        headerItems = sorted(headers.items()) if isinstance(headers, dict) else list(headers or [])
        for (key, value) in headerItems:
            yield "%s: %s" % (key, value)
        yield '' # empty line

        text = base64.b64encode(data).decode('ascii')
        for i in range(0, len(text), lineWidth):
            yield text[i:i + lineWidth]
        if checksum:
            # take only the last 3 bytes of the big endian long
            yield '=' + base64.b64encode(pack('!L', crc24(data))[1:]).decode('ascii')
        yield '-----END PGP ' + str(marker).upper() + '-----'
        yield '' # final line break

    return "\n".join(_iter_enarmor(data))


def unarmor(text, marker = 'PUBLIC KEY BLOCK', checksum = True):
    """ Convert one ASCII-armored block into binary
        http://tools.ietf.org/html/rfc4880#section-6

        Armor headers, if any, are skipped. A trailing CRC-24 line is
        verified when checksum is set.
    """
    begin = '-----BEGIN PGP ' + str(marker).upper() + '-----'
    end = '-----END PGP ' + str(marker).upper() + '-----'
    begin_pos = text.find(begin)
    end_pos = text.find(end)
    if begin_pos == -1 or end_pos == -1 or begin_pos >= end_pos:
        raise ArmorError("Invalid armor format: missing %s markers" % marker)

    lines = [l.strip() for l in text[begin_pos + len(begin):end_pos].replace("\r", "").strip().split("\n")]
    if '' in lines: # Header lines end at the first empty line
        lines = lines[lines.index('') + 1:]
    lines = [l for l in lines if l]
    if not lines:
        raise ArmorError("No data found in armor")

    crc = None
    if checksum and lines[-1].startswith('='):
        crc = lines.pop()[1:]

    try:
        data = base64.b64decode(''.join(lines), validate = True)
        expected = crc is not None and base64.b64decode(crc, validate = True)
    except (binascii.Error, ValueError) as e:
        raise ArmorError("Invalid base64 in armor: %s" % e)

    if crc is not None and pack('!L', crc24(data))[1:] != expected:
        raise ChecksumError('CRC24 check failed')

    return data
