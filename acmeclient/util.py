import base64
import hashlib
import re
from typing import List, Tuple, Union
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.x509 import NameAttribute, DNSName, SubjectAlternativeName
from cryptography.hazmat.primitives import serialization, hashes
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import ec

from acmeclient import settings
from acmeclient.base import _JWKBase, b64_encode


def get_keyAuthorization(token: str, jwk: _JWKBase) -> str:
    """
    construct auth string by joining challenge token and key thumbprint.

    see https://tools.ietf.org/html/rfc8555#section-8.1
    """
    return f'{token}.{jwk.thumbprint()}'


def get_dns_chall_txt_record(token: str, jwk: _JWKBase) -> str:
    """
    TXT record value for dns-01, the b64 encoded SHA-256 digest of the key
    authorization.

    see https://tools.ietf.org/html/rfc8555#section-8.4
    """
    key_auth = get_keyAuthorization(token, jwk)
    return b64_encode(hashlib.sha256(key_auth.encode('utf-8')).digest())


def dns01_record_name(domain: str) -> str:
    """`_acme-challenge.<domain>`, a leading `*.` of a wildcard is dropped"""
    if domain.startswith('*.'):
        domain = domain[2:]
    return f'{settings.DNS_LABEL}.{domain}'


def generate_ec_privkey() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1(), default_backend())


def privkey_to_pem(privkey: ec.EllipticCurvePrivateKey) -> bytes:
    return privkey.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def create_csr(privkey: ec.EllipticCurvePrivateKey,
               domains: List[str]) -> bytes:
    """
    generate csr using `cryptography.x509`, output DER bytes; the first
    domain is the subject CN, all domains are added as SAN.
    """
    if not domains:
        raise ValueError('at least one domain is needed for a csr')
    csr = x509.CertificateSigningRequestBuilder()
    csr = csr.subject_name(
        x509.Name([NameAttribute(NameOID.COMMON_NAME, domains[0])])
    )
    alt_names = [DNSName(d) for d in domains]
    csr = csr.add_extension(SubjectAlternativeName(alt_names), critical=False)
    csr_signed = csr.sign(
        privkey, algorithm=hashes.SHA256(), backend=default_backend()
    )
    return csr_signed.public_bytes(serialization.Encoding.DER)


def generate_csr(domains: List[str]) -> Tuple[bytes, bytes]:
    """new P-256 key and csr for `domains`, return `(privkey_pem, csr_pem)`"""
    privkey = generate_ec_privkey()
    csr_der = create_csr(privkey, domains)
    csr_pem = x509.load_der_x509_csr(csr_der, default_backend()).public_bytes(
        serialization.Encoding.PEM
    )
    return privkey_to_pem(privkey), csr_pem


_PEM_ARMOR = re.compile(r'-----[^-]+-----')


def csr_to_der(csr: Union[bytes, str]) -> bytes:
    """accept a DER or PEM encoded csr, return DER"""
    if isinstance(csr, str):
        csr = csr.encode('ascii')
    if not csr.lstrip().startswith(b'-----'):
        return csr
    body = _PEM_ARMOR.sub('', csr.decode('ascii'))
    return base64.b64decode(''.join(body.split()))


def split_fullchain(fullchain: str) -> Tuple[str, str]:
    """split a pem chain into the leaf certificate and the rest"""
    end = '-----END CERTIFICATE-----'
    cert, sep, chain = fullchain.partition(end)
    if not sep:
        raise ValueError('no pem certificate found')
    return cert + end + '\n', chain.lstrip('\n')


def save_cert(fullchain: str, cert_dir: Union[str, Path]) -> Path:
    """
    write 3 cert files, return the directory
    as below
     * `cert.pem` the server cert file;
     * `chain.pem` intermediate cert file;
     * `fullchain.pem` both the cert and intermediate, as reponse by the ACME
     server
    """
    cert_dir = Path(cert_dir).expanduser().absolute()
    cert_dir.mkdir(parents=True, exist_ok=True)
    cert, chain = split_fullchain(fullchain)
    (cert_dir / settings.CERT_FULLCHAIN).write_text(fullchain)
    (cert_dir / settings.CERT_NAME).write_text(cert)
    (cert_dir / settings.CERT_CHAIN).write_text(chain)
    return cert_dir
