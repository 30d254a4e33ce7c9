import logging
import sys

from Crypto.Random import get_random_bytes

import OpenPGPKeygen.cryptography

# Usage: keygen.py 'Name <email>' password [created_at] < seed.bin
# Without a seed on stdin a random one is used.

logging.basicConfig(level=logging.DEBUG)

user, password = sys.argv[1], sys.argv[2]
created_at = int(sys.argv[3]) if len(sys.argv) > 3 else 0

seed = b'' if sys.stdin.isatty() else sys.stdin.buffer.read()
if not seed:
	seed = get_random_bytes(32)

keys = OpenPGPKeygen.cryptography.get_keys(seed, user, password, created_at)

sys.stderr.write('Key ID: %s\n' % keys.key_id)
sys.stdout.write(keys.public_key)
sys.stdout.write(keys.private_key)
