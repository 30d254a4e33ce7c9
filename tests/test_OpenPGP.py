import hashlib

import pytest

import OpenPGPKeygen


def ed_point():
    return int.from_bytes(b'\x40' + bytes(range(32)), 'big')


class TestLength:
    def one_length(self, length, encoded):
        assert OpenPGPKeygen.encode_length(length) == encoded
        assert OpenPGPKeygen.read_length(OpenPGPKeygen.ByteReader(encoded)) == length

    def testOneOctet(self):
        self.one_length(0, b'\x00')
        self.one_length(191, b'\xbf')

    def testTwoOctets(self):
        self.one_length(192, b'\xc0\x00')
        self.one_length(8383, b'\xdf\xff')

    def testFiveOctets(self):
        self.one_length(8384, b'\xff\x00\x00\x20\xc0')
        self.one_length(2 ** 16, b'\xff\x00\x01\x00\x00')

    def testPartialBodyLength(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.read_length(OpenPGPKeygen.ByteReader(b'\xe0'))

    def testTruncated(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.read_length(OpenPGPKeygen.ByteReader(b'\xff\x00\x01'))

    def testNegative(self):
        with pytest.raises(OpenPGPKeygen.InvalidParameterError):
            OpenPGPKeygen.encode_length(-1)


class TestOID:
    def testEd25519(self):
        encoded = bytes.fromhex('2b06010401da470f01')
        assert OpenPGPKeygen.encode_oid(OpenPGPKeygen.curves['ed25519']) == encoded
        assert OpenPGPKeygen.decode_oid(encoded) == '1.3.6.1.4.1.11591.15.1'

    def testCurve25519(self):
        encoded = bytes.fromhex('2b060104019755010501')
        assert OpenPGPKeygen.encode_oid(OpenPGPKeygen.curves['curve25519']) == encoded
        assert OpenPGPKeygen.decode_oid(encoded) == '1.3.6.1.4.1.3029.1.5.1'

    def testNistP256(self):
        encoded = OpenPGPKeygen.encode_oid('1.2.840.10045.3.1.7')
        assert encoded == bytes.fromhex('2a8648ce3d030107')
        assert OpenPGPKeygen.decode_oid(encoded) == '1.2.840.10045.3.1.7'

    def testZeroArc(self):
        assert OpenPGPKeygen.encode_oid('1.3.132.0.34') == bytes.fromhex('2b81040022')
        assert OpenPGPKeygen.decode_oid(bytes.fromhex('2b81040022')) == '1.3.132.0.34'

    def testInvalid(self):
        with pytest.raises(OpenPGPKeygen.InvalidParameterError):
            OpenPGPKeygen.encode_oid('1.x.3')
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.decode_oid(b'')
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.decode_oid(b'\x2b\x81')


class TestMPI:
    def testMinimal(self):
        assert OpenPGPKeygen.mpi_bytes(1) == b'\x00\x01\x01'
        assert OpenPGPKeygen.mpi_bytes(0x1ff) == b'\x00\x09\x01\xff'
        assert OpenPGPKeygen.mpi_bytes(0) == b'\x00\x00'
        assert OpenPGPKeygen.decode_mpi(b'\x00\x09\x01\xff') == 0x1ff

    def testEccPoint(self):
        encoded = OpenPGPKeygen.mpi_bytes(ed_point())
        assert encoded[:2] == b'\x01\x07' # 263 bits
        assert len(encoded) == 35

    def testOpaqueKeepsLeadingZeros(self):
        assert OpenPGPKeygen.opaque_mpi_bytes(b'\x00\x01') == b'\x00\x10\x00\x01'
        assert OpenPGPKeygen.decode_mpi(b'\x00\x10\x00\x01') == 1

    def testNegative(self):
        with pytest.raises(OpenPGPKeygen.InvalidParameterError):
            OpenPGPKeygen.mpi_bytes(-1)

    def testTrailingBytes(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.decode_mpi(b'\x00\x01\x01\x00')
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.decode_mpi(b'\x00')

    def testBuffers(self):
        secret = bytearray(b'\x00\x09\x01\xff\x01\x09')
        assert OpenPGPKeygen.decode_mpi(memoryview(secret)[:4]) == 0x1ff
        assert OpenPGPKeygen.decode_checksummed_mpi(secret) == 0x1ff
        secret.append(0) # no views left open

    def testChecksummed(self):
        material = OpenPGPKeygen.mpi_bytes(0x1ff)
        chk = OpenPGPKeygen.checksum(material).to_bytes(2, 'big')
        assert chk == b'\x01\x09'
        assert OpenPGPKeygen.decode_checksummed_mpi(material + chk) == 0x1ff
        with pytest.raises(OpenPGPKeygen.ChecksumError):
            OpenPGPKeygen.decode_checksummed_mpi(material + b'\x01\x0a')


class TestEnums:
    def testLookup(self):
        assert OpenPGPKeygen.public_key_algorithms.value('EdDSA') == 22
        assert OpenPGPKeygen.hash_algorithms.name(10) == 'sha512'
        assert OpenPGPKeygen.packet_tags.name(14) == 'publicSubkey'
        assert OpenPGPKeygen.aead_algorithms.value('OCB') == 2

    def testUnknown(self):
        with pytest.raises(OpenPGPKeygen.UnknownEnumValueError):
            OpenPGPKeygen.public_key_algorithms.name(1)
        with pytest.raises(OpenPGPKeygen.UnknownEnumValueError):
            OpenPGPKeygen.hash_algorithms.value('sha999')

    def testIsDecodeError(self):
        assert issubclass(OpenPGPKeygen.UnknownEnumValueError, OpenPGPKeygen.PacketDecodeError)
        assert issubclass(OpenPGPKeygen.PacketDecodeError, OpenPGPKeygen.OpenPGPException)


class TestS2K:
    def testCountOctet(self):
        assert OpenPGPKeygen.decode_s2k_count(240) == 33554432
        assert OpenPGPKeygen.decode_s2k_count(96) == 65536
        assert OpenPGPKeygen.decode_s2k_count(0) == 1024

    def testSimple(self):
        key = OpenPGPKeygen.derive_key('sha1', 16, b'password')
        assert bytes(key) == hashlib.sha1(b'password').digest()[:16]

    def testMultipleBlocks(self):
        key = OpenPGPKeygen.derive_key('sha1', 32, b'password')
        expected = hashlib.sha1(b'password').digest() + hashlib.sha1(b'\x00password').digest()
        assert bytes(key) == expected[:32]

    def testIterated(self):
        salt = b'saltsalt'
        key = OpenPGPKeygen.S2K(salt, 'sha256', 96).make_key(b'password', 16)
        data = salt + b'password'
        expected = hashlib.sha256((data * (65536 // len(data) + 1))[:65536]).digest()
        assert bytes(key) == expected[:16]

    def testCountBelowDataLength(self):
        # The whole salt and passphrase are hashed even if the count is smaller
        salt = b'12345678'
        passphrase = b'p' * 2000
        key = OpenPGPKeygen.derive_key('sha1', 20, passphrase, salt, 0)
        assert bytes(key) == hashlib.sha1(salt + passphrase).digest()

    def testDeterministic(self):
        s2k = OpenPGPKeygen.S2K(b'\x01' * 8, 'sha1', 0)
        assert s2k.make_key(b'pw', 24) == s2k.make_key(b'pw', 24)
        assert s2k.make_key(b'pw', 24) != s2k.make_key(b'pw2', 24)

    def testSerialization(self):
        s2k = OpenPGPKeygen.S2K(b'\x01' * 8, 'sha1', 240)
        assert s2k.to_bytes() == b'\x03\x02' + b'\x01' * 8 + b'\xf0'
        assert OpenPGPKeygen.S2K.parse(OpenPGPKeygen.ByteReader(s2k.to_bytes())) == s2k

    def testUnknownHash(self):
        with pytest.raises(OpenPGPKeygen.UnsupportedAlgorithmError):
            OpenPGPKeygen.derive_key('whirlpool', 16, b'password')

    def testSaltLength(self):
        with pytest.raises(OpenPGPKeygen.InvalidParameterError):
            OpenPGPKeygen.S2K(b'short')


class TestSerialization:
    def one_serialization(self, packet):
        message = OpenPGPKeygen.Message([packet])
        reparsed = OpenPGPKeygen.Message.parse(message.to_bytes())
        assert reparsed == message
        assert reparsed.to_bytes() == message.to_bytes()

    def testUserID(self):
        self.one_serialization(OpenPGPKeygen.UserIDPacket('Alice (work) <alice@example.com>'))

    def testPublicKey(self):
        self.one_serialization(OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 1234))

    def testPublicSubkey(self):
        self.one_serialization(OpenPGPKeygen.PublicSubkeyPacket('curve25519', ed_point(), 'ECDH', 0,
                                                                'sha256', 'aes128'))

    def testECDSA(self):
        point = int.from_bytes(b'\x04' + b'\x11' * 64, 'big')
        self.one_serialization(OpenPGPKeygen.PublicKeyPacket('nistP256', point, 'ECDSA', 99))

    def testUnknownCurve(self):
        packet = OpenPGPKeygen.PublicKeyPacket('1.2.3.4', ed_point(), 'EdDSA', 0)
        self.one_serialization(packet)
        reparsed = OpenPGPKeygen.Message.parse(packet.to_bytes())[0]
        assert reparsed.curve == '1.2.3.4'

    def testSignature(self):
        sig = OpenPGPKeygen.SignaturePacket('certPositive', 'EdDSA', 'sha512', [
            OpenPGPKeygen.SignaturePacket.IssuerFingerprintPacket('ab' * 20),
            OpenPGPKeygen.SignaturePacket.SignatureCreationTimePacket(1000),
            OpenPGPKeygen.SignaturePacket.KeyFlagsPacket(['sign', 'certify']),
            OpenPGPKeygen.SignaturePacket.PreferredSymmetricAlgorithmsPacket(['aes256', 'aes128']),
            OpenPGPKeygen.SignaturePacket.PreferredAEADAlgorithmsPacket(['OCB', 'EAX']),
            OpenPGPKeygen.SignaturePacket.FeaturesPacket(['modDetect']),
            OpenPGPKeygen.SignaturePacket.KeyServerPreferencesPacket(True),
            OpenPGPKeygen.SignaturePacket.PrimaryUserIDPacket(True),
            OpenPGPKeygen.SignaturePacket.Subpacket(b'\x80\x00\x00\x00', 'notationData'),
        ], [OpenPGPKeygen.SignaturePacket.IssuerPacket('0123456789abcdef')], b'\x12\x34', [5, 2 ** 255])
        self.one_serialization(sig)

    def testPlainSecretKey(self):
        public = OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 0)
        self.one_serialization(OpenPGPKeygen.SecretKeyPacket.plain(public, 0x1234))

    def testEncryptedSecretSubkey(self):
        public = OpenPGPKeygen.PublicSubkeyPacket('curve25519', ed_point(), 'ECDH', 0, 'sha256', 'aes128')
        s2k = OpenPGPKeygen.S2K(b'\x02' * 8, 'sha1', 240)
        packet = OpenPGPKeygen.SecretSubkeyPacket(public, 'encrypted', 'aes128', s2k, b'\x03' * 16, b'\x04' * 54)
        self.one_serialization(packet)
        assert packet.public_key() == public


class TestPackets:
    def testHeader(self):
        data = OpenPGPKeygen.UserIDPacket('a').to_bytes()
        assert data == b'\xb4\x01a'
        long_id = OpenPGPKeygen.UserIDPacket('a' * 300).to_bytes()
        assert long_id[:3] == b'\xb5\x01\x2c'

    def testNewFormatRejected(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.Message.parse(b'\xcd\x01a')

    def testUnknownTag(self):
        with pytest.raises(OpenPGPKeygen.UnknownEnumValueError):
            OpenPGPKeygen.Message.parse(b'\x80\x01a')

    def testUnsupportedTag(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.Message.parse(b'\xac\x01\x00')

    def testTruncated(self):
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.Message.parse(b'\x99\x00\x10\x04')

    def testTrailingBytes(self):
        body = OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 0).body() + b'\x00'
        with pytest.raises(OpenPGPKeygen.PacketDecodeError):
            OpenPGPKeygen.Message.parse(b'\x98' + bytes([len(body)]) + body)

    def testSecretKeyChecksum(self):
        public = OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 0)
        data = bytearray(OpenPGPKeygen.SecretKeyPacket.plain(public, 0x1234).to_bytes())
        data[-1] ^= 1
        with pytest.raises(OpenPGPKeygen.ChecksumError):
            OpenPGPKeygen.Message.parse(bytes(data))

    def testUnknownKeyFlags(self):
        data = OpenPGPKeygen.encode_length(2) + b'\x1b\x40'
        with pytest.raises(OpenPGPKeygen.UnknownEnumValueError):
            OpenPGPKeygen.SignaturePacket.get_subpackets(data)

    def testUnknownSubpacketType(self):
        with pytest.raises(OpenPGPKeygen.UnknownEnumValueError):
            OpenPGPKeygen.SignaturePacket.get_subpackets(b'\x02\x63\x00')

    def testTimestampRange(self):
        with pytest.raises(OpenPGPKeygen.InvalidParameterError):
            OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 2 ** 32).to_bytes()

    def testFingerprint(self):
        packet = OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 0)
        body = packet.body()
        expected = hashlib.sha1(b'\x99' + len(body).to_bytes(2, 'big') + body).hexdigest()
        assert packet.fingerprint() == expected
        assert packet.key_id() == expected[-16:]

    def testUserIDParts(self):
        uid = OpenPGPKeygen.UserIDPacket('Alice (work) <alice@example.com>')
        assert (uid.name, uid.comment, uid.email) == ('Alice', 'work', 'alice@example.com')
        uid = OpenPGPKeygen.UserIDPacket('<bob@example.com>')
        assert (uid.name, uid.comment, uid.email) == (None, None, 'bob@example.com')
        assert str(OpenPGPKeygen.UserIDPacket('Carol')) == 'Carol'

    def testSignatureGroups(self):
        key = OpenPGPKeygen.PublicKeyPacket('ed25519', ed_point(), 'EdDSA', 0)
        uid = OpenPGPKeygen.UserIDPacket('Alice')
        sub = OpenPGPKeygen.PublicSubkeyPacket('curve25519', ed_point(), 'ECDH', 0, 'sha256', 'aes128')
        uid_sig = OpenPGPKeygen.SignaturePacket('certPositive')
        sub_sig = OpenPGPKeygen.SignaturePacket('subkeyBinding')
        message = OpenPGPKeygen.Message([key, uid, uid_sig, sub, sub_sig])
        assert message.signatures() == [(key, uid, [uid_sig]), (key, sub, [sub_sig])]

    def testIssuer(self):
        sig = OpenPGPKeygen.SignaturePacket('certPositive', 'EdDSA', 'sha512',
            [OpenPGPKeygen.SignaturePacket.IssuerFingerprintPacket('cd' * 20)],
            [OpenPGPKeygen.SignaturePacket.IssuerPacket('cd' * 8)])
        assert sig.issuer() == 'cd' * 8
        assert sig.issuer_fingerprint() == 'cd' * 20


class TestASCIIArmor:
    def testCRC24(self):
        assert OpenPGPKeygen.crc24(b'') == 0xb704ce

    def testEnarmorLayout(self):
        armored = OpenPGPKeygen.enarmor(b'\x00' * 100)
        lines = armored.split('\n')
        assert lines[0] == '-----BEGIN PGP PUBLIC KEY BLOCK-----'
        assert lines[1] == ''
        assert lines[2] == 'A' * 64
        assert lines[3] == 'A' * 64
        assert lines[4] == 'AAAAAA=='
        assert lines[5].startswith('=') and len(lines[5]) == 5
        assert lines[6] == '-----END PGP PUBLIC KEY BLOCK-----'
        assert lines[7] == ''
        assert len(lines) == 8

    def testRoundTrip(self):
        data = bytes(range(256)) * 3
        armored = OpenPGPKeygen.enarmor(data, 'PRIVATE KEY BLOCK')
        assert OpenPGPKeygen.unarmor(armored, 'PRIVATE KEY BLOCK') == data

    def testHeadersSkipped(self):
        armored = OpenPGPKeygen.enarmor(b'hello', headers = {'Comment': 'ed25519'})
        assert 'Comment: ed25519\n\n' in armored
        assert OpenPGPKeygen.unarmor(armored) == b'hello'

    def testBadChecksum(self):
        lines = OpenPGPKeygen.enarmor(b'hello').split('\n')
        assert lines[-3] != '=AAAA'
        lines[-3] = '=AAAA'
        with pytest.raises(OpenPGPKeygen.ChecksumError):
            OpenPGPKeygen.unarmor('\n'.join(lines))

    def testMissingMarkers(self):
        with pytest.raises(OpenPGPKeygen.ArmorError):
            OpenPGPKeygen.unarmor('aGVsbG8=')
        with pytest.raises(OpenPGPKeygen.ArmorError):
            OpenPGPKeygen.unarmor(OpenPGPKeygen.enarmor(b'hello'), 'PRIVATE KEY BLOCK')

    def testBadBase64(self):
        armored = '-----BEGIN PGP PUBLIC KEY BLOCK-----\n\n!!!!\n-----END PGP PUBLIC KEY BLOCK-----\n'
        with pytest.raises(OpenPGPKeygen.ArmorError):
            OpenPGPKeygen.unarmor(armored)

    def testEmpty(self):
        armored = '-----BEGIN PGP PUBLIC KEY BLOCK-----\n\n-----END PGP PUBLIC KEY BLOCK-----\n'
        with pytest.raises(OpenPGPKeygen.ArmorError):
            OpenPGPKeygen.unarmor(armored)
