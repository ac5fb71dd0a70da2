"""
Command line issuance with dns-01: account, order, challenges, finalize and
certificate files in a working directory. Run `run_acmeclient.py -h`.

Working directory layout, one sub directory per domain set:
 * `<wd>/<domains>/account/` account key and url, reused by later runs;
 * `<wd>/<domains>/cert/` certificate key, csr and pem files.
"""
from typing import Any, Dict, List, Optional
from pathlib import Path
import argparse
import logging
import time

from acmeclient import settings
from acmeclient.actions import ACMEClient
from acmeclient.dnsprovider.dispatch import get_dns_provider, supported_provider
from acmeclient.jwk import JWKEC
from acmeclient.util import generate_csr, save_cert


logger = logging.getLogger(__name__)


def main_add_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='request a certificate with the ACME dns-01 challenge'
    )
    parser.add_argument(
        '-d', '--domain', action='append', required=True,
        help='domain to include, repeat for more; the first is the CN'
    )
    parser.add_argument(
        '-c', '--contact', required=True, help='contact email of the account'
    )
    parser.add_argument(
        '--CA_entry', default=settings.LETSENCRYPT_STAGING,
        help='url of the acme directory, default is letsencrypt staging'
    )
    parser.add_argument(
        '--account_private_key', default='',
        help='PEM file of an existing EC P-256 account key'
    )
    parser.add_argument(
        '--account_url', default='',
        help='url of the existing account owning --account_private_key'
    )
    parser.add_argument(
        '-w', '--working_directory', default=settings.WD_DEFAULT
    )
    parser.add_argument(
        '--dnsprovider', default='aliyun', choices=sorted(supported_provider)
    )
    parser.add_argument('-k', '--access_key', required=True)
    parser.add_argument('-s', '--secret', required=True)
    parser.add_argument(
        '--propagation_wait', type=float, default=20,
        help='seconds to wait for TXT records to propagate'
    )
    parser.add_argument(
        '--poll_interval', type=float, default=settings.POLL_INTERVAL
    )
    parser.add_argument(
        '--poll_retry_count', type=int, default=settings.POLL_ATTEMPTS
    )
    parser.add_argument('--no_ssl_verify', action='store_true')
    parser.add_argument('--debug', action='store_true')
    return parser.parse_args(argv)


def main_param_parser(args: argparse.Namespace) -> Dict[str, Any]:
    param_dict = vars(args).copy()
    if bool(param_dict['account_private_key']) != bool(param_dict['account_url']):
        raise ValueError(
            '--account_private_key and --account_url must be given together'
        )
    wd = Path(param_dict['working_directory']).expanduser().absolute()
    param_dict['working_directory'] = wd / '_'.join(param_dict['domain'])
    return param_dict


def _load_or_create_account(client: ACMEClient,
                            acct_dir: Path,
                            contact: str,
                            account_private_key: str,
                            account_url: str) -> None:
    key_path = acct_dir / settings.ACCT_KEY_NAME
    url_path = acct_dir / settings.ACCT_URL_NAME
    if account_private_key:
        jwk = JWKEC.from_pem(Path(account_private_key).read_bytes())
        client.restore_account(account_url, jwk)
    elif key_path.exists() and url_path.exists():
        jwk = JWKEC.from_pem(key_path.read_bytes())
        client.restore_account(url_path.read_text().strip(), jwk)
        logger.info('using account stored in %s', acct_dir)
    else:
        acct_url, jwk = client.create_account(contact)
        acct_dir.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(jwk.to_pem())
        key_path.chmod(0o600)
        url_path.write_text(acct_url)


def main(domain: List[str],
         contact: str,
         CA_entry: str,
         account_private_key: str,
         account_url: str,
         working_directory: Path,
         dnsprovider: str,
         access_key: str,
         secret: str,
         propagation_wait: float,
         poll_interval: float,
         poll_retry_count: int,
         no_ssl_verify: bool,
         debug: bool) -> str:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    client = ACMEClient(
        CA_entry,
        dns_provider=get_dns_provider(dnsprovider, access_key, secret),
        poll_interval=poll_interval,
        poll_attempts=poll_retry_count,
        verify_ssl=not no_ssl_verify,
    )
    try:
        client.init()
        _load_or_create_account(
            client, working_directory / settings.WD_ACCT,
            contact, account_private_key, account_url
        )
        order = client.create_order(domain)
        try:
            client.complete_dns01_challenges(order)
            logger.info('waiting %s seconds for dns propagation', propagation_wait)
            time.sleep(propagation_wait)

            cert_dir = working_directory / settings.WD_CERT
            cert_dir.mkdir(parents=True, exist_ok=True)
            privkey_pem, csr_pem = generate_csr(domain)
            (cert_dir / settings.CERT_KEY_NAME).write_bytes(privkey_pem)
            (cert_dir / settings.CERT_KEY_NAME).chmod(0o600)
            (cert_dir / settings.CSR_NAME).write_bytes(csr_pem)

            fullchain = client.finalize(order, csr_pem)
        finally:
            client.cleanup_dns01_records(order)
        save_cert(fullchain, cert_dir)
        logger.info('certificate saved to %s', cert_dir)
        return fullchain
    finally:
        client.close()


def run(argv: Optional[List[str]] = None) -> None:
    args = main_add_args(argv)
    main(**main_param_parser(args))


if __name__ == '__main__':
    run()
