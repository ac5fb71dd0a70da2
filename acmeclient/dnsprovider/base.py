import abc


class DNSProvider(abc.ABC):
    """
    Interface the dns-01 handler talks to. Both methods must be idempotent:
    setting a record that already holds `value` and removing a record that
    does not exist are not errors.
    """

    @abc.abstractmethod
    def set_record(self, domain: str, record_name: str, value: str) -> None:
        """publish a TXT record `record_name` with `value` for `domain`"""

    @abc.abstractmethod
    def remove_record(self, domain: str, record_name: str) -> None:
        """remove TXT records named `record_name` of `domain`"""
