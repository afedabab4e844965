"""TLS material and server context for the device's dial-back connection.

The FM-Master firmware only speaks TLS 1.2 with old RSA key-exchange suites
and never validates the server certificate. The settings below exist purely
so the device can connect; they provide little transport security compared
with modern defaults and must not be reused for anything else.
"""

from __future__ import annotations

import datetime
import ssl
import tempfile
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from oase_control.logging_abstraction import get_logger

logger = get_logger(__name__)

CERT_COMMON_NAME = "com.oase.easycontrol"
CERT_VALIDITY = datetime.timedelta(days=7)
RSA_KEY_SIZE = 2048

# Interoperability constraint: the device offers nothing newer than these.
# RC4/3DES/SHA1 suites are broken; SECLEVEL=0 lets OpenSSL load what it still has.
LEGACY_CIPHERS = [
    "AES128-SHA",
    "DES-CBC3-SHA",
    "RC4-SHA",
    "RC4-MD5",
    "AES256-SHA",
    "AES128-SHA256",
    "AES256-SHA256",
]

GENERATED_CERT_NAME = "oase-control.crt"
GENERATED_KEY_NAME = "oase-control.key"


class CertificateProvider:
    """Supplies the certificate/key pair and the legacy server SSLContext.

    Configured PEM files are used as-is. Without them a short-lived self-signed
    certificate is generated into ``generated_dir``.
    """

    def __init__(
        self,
        cert_file: str | None = None,
        key_file: str | None = None,
        generated_dir: str | Path | None = None,
    ) -> None:
        self.cert_file = cert_file
        self.key_file = key_file
        self.generated_dir = Path(generated_dir) if generated_dir else Path(tempfile.gettempdir()) / "oase-control"

    def ensure_certificates(self) -> tuple[str, str]:
        """Return (cert_path, key_path), generating a self-signed pair when none is configured.

        Raises:
            FileNotFoundError: A configured certificate or key file does not exist

        """
        if self.cert_file and self.key_file:
            missing = [p for p in (self.cert_file, self.key_file) if not Path(p).exists()]
            if missing:
                msg = f"SSL files missing: {', '.join(missing)}"
                logger.error(msg)
                raise FileNotFoundError(msg)
            return self.cert_file, self.key_file

        cert_path = self.generated_dir / GENERATED_CERT_NAME
        key_path = self.generated_dir / GENERATED_KEY_NAME
        cert_pem, key_pem = self.generate_self_signed()
        self.generated_dir.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(key_pem)
        key_path.chmod(0o600)
        cert_path.write_bytes(cert_pem)
        logger.info(
            "Generated self-signed certificate",
            extra={"cert_file": str(cert_path), "common_name": CERT_COMMON_NAME},
        )
        return str(cert_path), str(key_path)

    @staticmethod
    def generate_self_signed(now: datetime.datetime | None = None) -> tuple[bytes, bytes]:
        """Build a PEM certificate and key valid from ``now - 7d`` to ``now + 7d``."""
        now = now or datetime.datetime.now(datetime.UTC)
        key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
        subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, CERT_COMMON_NAME)])
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - CERT_VALIDITY)
            .not_valid_after(now + CERT_VALIDITY)
            .sign(key, hashes.SHA256())
        )
        cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cert_pem, key_pem

    def create_ssl_context(self) -> ssl.SSLContext:
        cert_file, key_file = self.ensure_certificates()

        ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        ssl_context.load_cert_chain(certfile=cert_file, keyfile=key_file)
        # Interoperability constraint: the device cannot negotiate TLS 1.3
        ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2
        ssl_context.maximum_version = ssl.TLSVersion.TLSv1_2
        # the device presents no client certificate
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        ssl_context.set_ciphers(":".join([*LEGACY_CIPHERS, "@SECLEVEL=0"]))
        return ssl_context
