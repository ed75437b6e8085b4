"""PKCS#7 signing of pass manifests.

A .pkpass bundle carries a detached PKCS#7 signature over manifest.json,
made with the Pass Type ID certificate and including the Apple WWDR
intermediate certificate.

NOTE: Apple Wallet requires SHA-1 for the PKCS#7 signature, which the
cryptography library refuses to produce. Signing therefore shells out to
``openssl smime``.
"""

import hashlib
import json
import subprocess
import tempfile
from pathlib import Path
from typing import Any

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from wallet.config import SigningConfig

logger = structlog.get_logger(__name__)

UNSIGNED_FILES = frozenset({"manifest.json", "signature"})


class ApplePassSignerError(Exception):
    """Raised when pass signing fails."""

    pass


class ApplePassSigner:
    """Creates manifests and signs them with the Pass Type ID certificate."""

    def __init__(self, config: SigningConfig) -> None:
        """Initialize the signer.

        Args:
            config: Validated signing credentials.
        """
        self.config = config
        self._certificate: x509.Certificate | None = None
        self._wwdr_certificate: x509.Certificate | None = None

    def _load_certificate(self, path: str) -> x509.Certificate:
        try:
            return x509.load_pem_x509_certificate(Path(path).read_bytes())
        except FileNotFoundError:
            raise ApplePassSignerError(f"Certificate not found: {path}")
        except ValueError as e:
            raise ApplePassSignerError(f"Failed to load certificate {path}: {e}")

    def _load_private_key(self) -> Any:
        password = self.config.key_password.encode() if self.config.key_password else None
        try:
            return serialization.load_pem_private_key(Path(self.config.key_path).read_bytes(), password=password)
        except FileNotFoundError:
            raise ApplePassSignerError(f"Private key not found: {self.config.key_path}")
        except (ValueError, TypeError) as e:
            raise ApplePassSignerError(f"Failed to load private key {self.config.key_path}: {e}")

    @property
    def certificate(self) -> x509.Certificate:
        """The Pass Type ID certificate, loaded on first access."""
        if self._certificate is None:
            self._certificate = self._load_certificate(self.config.cert_path)
        return self._certificate

    @property
    def wwdr_certificate(self) -> x509.Certificate:
        """The Apple WWDR intermediate certificate, loaded on first access."""
        if self._wwdr_certificate is None:
            self._wwdr_certificate = self._load_certificate(self.config.wwdr_cert_path)
        return self._wwdr_certificate

    def create_manifest(self, files: dict[str, bytes]) -> bytes:
        """Create manifest.json: SHA-1 digest per file in the bundle.

        Args:
            files: Mapping of filename to content.

        Returns:
            The manifest as UTF-8 JSON bytes.
        """
        manifest = {
            filename: hashlib.sha1(content).hexdigest()
            for filename, content in files.items()
            if filename not in UNSIGNED_FILES
        }
        return json.dumps(manifest, indent=2).encode("utf-8")

    def sign_manifest(self, manifest_data: bytes) -> bytes:
        """Create a detached PKCS#7 signature (DER) of the manifest.

        Args:
            manifest_data: The manifest.json content.

        Returns:
            The signature bytes.

        Raises:
            ApplePassSignerError: If openssl fails or times out.
        """
        with tempfile.TemporaryDirectory(prefix="pkpass-") as workdir:
            manifest_path = Path(workdir) / "manifest.json"
            sig_path = Path(workdir) / "signature"
            manifest_path.write_bytes(manifest_data)

            # openssl smime -sign -signer cert.pem -inkey key.pem -certfile wwdr.pem
            #   -in manifest.json -out signature -outform DER -binary
            cmd = [
                "openssl",
                "smime",
                "-sign",
                "-signer",
                self.config.cert_path,
                "-inkey",
                self.config.key_path,
                "-certfile",
                self.config.wwdr_cert_path,
                "-in",
                str(manifest_path),
                "-out",
                str(sig_path),
                "-outform",
                "DER",
                "-binary",
            ]
            if self.config.key_password:
                cmd.extend(["-passin", f"pass:{self.config.key_password}"])

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    check=False,
                    timeout=self.config.signing_timeout,
                )
            except subprocess.TimeoutExpired:
                logger.error("openssl_signing_timeout", timeout=self.config.signing_timeout)
                raise ApplePassSignerError(f"OpenSSL signing timed out after {self.config.signing_timeout}s")
            except OSError as e:
                logger.error("openssl_signing_unavailable", error=str(e))
                raise ApplePassSignerError(f"Could not run openssl: {e}")

            if result.returncode != 0:
                logger.error("openssl_signing_failed", returncode=result.returncode, stderr=result.stderr)
                raise ApplePassSignerError(f"OpenSSL signing failed: {result.stderr}")

            signature = sig_path.read_bytes()

        logger.debug("manifest_signed", manifest_size=len(manifest_data), signature_size=len(signature))
        return signature

    def validate_configuration(self) -> None:
        """Load every certificate and the key once to fail early on bad files.

        Raises:
            ApplePassSignerError: If any of them cannot be loaded.
        """
        _ = self.certificate
        _ = self.wwdr_certificate
        self._load_private_key()
        logger.info("apple_wallet_signer_validated", pass_type_id=self.config.pass_type_id)
