"""Easee charger and equalizer phase currents, appended to a CSV every few minutes."""
import logging
import os
import signal
import sys
import threading
import time

import requests

from stmq.config import ConfigError, load_config
from stmq.logs import setup_logging
from stmq.schedule import run_every

logger = logging.getLogger(__name__)

API_URL = "https://api.easee.com/api"
TIMEOUT = 10
CSV_HEADER = "unix_time,ch_curr1,ch_curr2,ch_curr3,eq_curr1,eq_curr2,eq_curr3\n"


class EaseeError(Exception):
    pass


class EaseeClient:
    def __init__(self, user, password):
        self.user = user
        self.password = password
        self.access_token = None
        self.refresh_token = None

    def store_tokens(self, r, kind):
        if r.status_code != 200:
            logger.error(f"Easee {kind} failed: HTTP {r.status_code}")
            return False
        data = r.json()
        self.access_token = data["accessToken"]
        self.refresh_token = data["refreshToken"]
        logger.info(f"Easee {kind} successful")
        return True

    def login(self):
        r = requests.post(f"{API_URL}/accounts/login",
                          json={"userName": self.user, "password": self.password}, timeout=TIMEOUT)
        if not self.store_tokens(r, "login"):
            raise EaseeError(f"Login rejected: HTTP {r.status_code}")

    def refresh(self):
        if not self.refresh_token:
            return False
        r = requests.post(f"{API_URL}/accounts/refresh_token",
                          json={"accessToken": self.access_token, "refreshToken": self.refresh_token},
                          headers={"Authorization": f"Bearer {self.access_token}"}, timeout=TIMEOUT)
        return self.store_tokens(r, "token refresh")

    def get(self, path):
        return requests.get(f"{API_URL}/{path}", headers={"Authorization": f"Bearer {self.access_token}"},
                            timeout=TIMEOUT)

    def state(self, kind, device_id):
        path = f"{kind}/{device_id}/state"
        if not self.access_token:
            self.login()
        r = self.get(path)
        if r.status_code == 401:
            if not self.refresh():
                self.login()
            r = self.get(path)
        if r.status_code != 200:
            raise EaseeError(f"{path}: HTTP {r.status_code}")
        return r.json()


class EaseeLogger:
    def __init__(self, client, charger_id, equalizer_id, csv_path):
        self.client = client
        self.charger_id = charger_id
        self.equalizer_id = equalizer_id
        self.csv_path = csv_path

    def poll(self):
        try:
            charger = self.client.state("chargers", self.charger_id)
            equalizer = self.client.state("equalizers", self.equalizer_id)
            currents = [charger["inCurrentT3"], charger["inCurrentT4"], charger["inCurrentT5"],
                        equalizer["currentL1"], equalizer["currentL2"], equalizer["currentL3"]]
            row = ",".join(f"{float(c):.2f}" for c in currents)
        except (EaseeError, requests.RequestException, KeyError, TypeError, ValueError) as e:
            logger.error(f"Easee query failed: {e}")
            return None
        self.write_csv(row)
        return row

    def write_csv(self, row):
        directory = os.path.dirname(self.csv_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.csv_path) or os.path.getsize(self.csv_path) == 0:
            with open(self.csv_path, "w") as f:
                f.write(CSV_HEADER)
        with open(self.csv_path, "a") as f:
            f.write(f"{int(time.time())},{row}\n")


def easee_logger_from_config(config):
    settings = config.easee
    return EaseeLogger(EaseeClient(settings.user, settings.pw),
                       settings.charger_id, settings.equalizer_id, settings.csv_path)


def main():
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig()
        logging.getLogger(__name__).error(f"Error loading config: {e}")
        sys.exit(1)
    setup_logging(config.log_file, config.log_level)
    if not config.easee.enabled:
        logger.error("easee.user, easee.pw, easee.charger_id and easee.equalizer_id are required")
        sys.exit(1)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())
    signal.signal(signal.SIGINT, lambda signum, frame: stop.set())
    logger.info("Easee poller initialized")
    run_every(easee_logger_from_config(config).poll, config.easee.interval_minutes, stop, name="Easee query")
    logger.info("Shutting down")


if __name__ == "__main__":
    main()
