# url to acme server's /directory
LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"

# run a test pebble server in docker
# https://github.com/letsencrypt/pebble
PEBBLE_TEST = "https://127.0.0.1:14000/dir"

VERSION = '0.1.0'
USER_AGENT = f'acmeclient/{VERSION}'

# seconds, passed to every `requests` call
REQUEST_TIMEOUT = 45

# retry policy defaults, delays in milliseconds
DEFAULT_RETRY = {
    'initial_delay': 1000,
    'max_delay': 30000,
    'max_retries': 5,
    'backoff_factor': 2,
}

# order polling after finalize, interval in seconds
POLL_INTERVAL = 2
POLL_ATTEMPTS = 10
# upper bound for a server supplied `Retry-After`
MAX_RETRY_AFTER = 60

DNS_LABEL = '_acme-challenge'

# working directory layout used by `run_acmeclient.py`
WD_DEFAULT = '~/.acmeclient'
WD_ACCT = 'account'
WD_CERT = 'cert'
ACCT_KEY_NAME = 'account.key'
ACCT_URL_NAME = 'account.url'
CERT_KEY_NAME = 'privkey.pem'
CSR_NAME = 'cert.csr'
CERT_NAME = 'cert.pem'
CERT_CHAIN = 'chain.pem'
CERT_FULLCHAIN = 'fullchain.pem'
