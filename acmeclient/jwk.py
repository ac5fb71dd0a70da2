from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from acmeclient.base import _JWKBase


class JWKEC(_JWKBase):
    """
    EC P-256 key for `ES256` signatures. The private key is kept on the jwk
    object, only the public members go into `_container`.

    following keyword param must be supplied:
     * crv: str
     * x: int
     * y: int
    """

    kty = 'EC'
    crv_name = 'P-256'
    coord_size = 32
    required_members = ('crv', 'kty', 'x', 'y')

    def __init__(self, priv_key: ec.EllipticCurvePrivateKey, **kwargs):
        self.crv: str
        self.x: int
        self.y: int
        self.priv_key = priv_key
        super().__init__(self.kty, **kwargs)

    @classmethod
    def from_private_key(cls, priv_key: ec.EllipticCurvePrivateKey) -> 'JWKEC':
        if not isinstance(priv_key.curve, ec.SECP256R1):
            raise TypeError(
                f'curve "{priv_key.curve.name}" not compatible with {cls.crv_name}'
            )
        numbers = priv_key.public_key().public_numbers()
        return cls(priv_key=priv_key, crv=cls.crv_name, x=numbers.x, y=numbers.y)

    @classmethod
    def generate(cls) -> 'JWKEC':
        return cls.from_private_key(
            ec.generate_private_key(ec.SECP256R1(), default_backend())
        )

    @classmethod
    def from_pem(cls, pem: bytes) -> 'JWKEC':
        priv_key = serialization.load_pem_private_key(
            pem, password=None, backend=default_backend()
        )
        if not isinstance(priv_key, ec.EllipticCurvePrivateKey):
            raise TypeError(f'key type "{type(priv_key)}" is not an EC key')
        return cls.from_private_key(priv_key)

    def to_pem(self) -> bytes:
        return self.priv_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )

    def _check_kty_param(self, kwargs: dict) -> None:
        for param in ('crv', 'x', 'y'):
            if not param in kwargs:
                raise TypeError(f'missing param "{param}" for key type {self.kty}')
        if kwargs['crv'] != self.crv_name:
            raise TypeError(f'unsupported curve "{kwargs["crv"]}"')

    def _update_container(self) -> None:
        self._container['kty'] = self.kty
        self._container['crv'] = self.crv
        self._container['x'] = self._b64_encode_int(self.x, self.coord_size)
        self._container['y'] = self._b64_encode_int(self.y, self.coord_size)

    def sign(self, data: bytes) -> bytes:
        """
        `cryptography` returns a DER encoded signature, JWS wants the fixed
        length `r || s` form.

        see https://tools.ietf.org/html/rfc7518#section-3.4
        """
        der_sig = self.priv_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der_sig)
        return r.to_bytes(self.coord_size, 'big') + s.to_bytes(self.coord_size, 'big')
