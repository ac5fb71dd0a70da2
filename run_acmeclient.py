"""
request a certificate with dns-01, see `python run_acmeclient.py -h`
"""


if __name__ == '__main__':
    from acmeclient.execution import run
    run()
