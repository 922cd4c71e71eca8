"""
Logging setup and alerting for the visibility pipeline
"""
import logging
import os
import smtplib
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from threading import Lock
from typing import Dict, List, Any, Optional

logger = logging.getLogger(__name__)

ALERT_LEVELS = ('info', 'warning', 'error', 'critical')


def setup_logging(log_level: str = "INFO", log_dir: str = "logs"):
    """Console, visibility.log and errors.log handlers plus a separate performance log"""

    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    simple_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(
        os.path.join(log_dir, 'visibility.log'),
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(file_handler)

    error_handler = logging.FileHandler(
        os.path.join(log_dir, 'errors.log'),
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_handler)

    perf_handler = logging.FileHandler(
        os.path.join(log_dir, 'performance.log'),
        encoding='utf-8'
    )
    perf_handler.setLevel(logging.INFO)
    perf_handler.setFormatter(simple_formatter)

    perf_logger = logging.getLogger('performance')
    perf_logger.handlers.clear()
    perf_logger.addHandler(perf_handler)
    perf_logger.setLevel(logging.INFO)
    perf_logger.propagate = False

    return root_logger


@dataclass
class Alert:
    id: str
    timestamp: str
    level: str  # 'info', 'warning', 'error', 'critical'
    category: str  # 'health', 'submission', 'remediation'
    message: str
    source: str
    resolved: bool = False
    resolved_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AlertManager:
    """Records alerts, drops unresolved duplicates and optionally emails serious ones"""

    def __init__(self):
        self.alerts: List[Alert] = []
        self.email_config = None
        self._lock = Lock()

    def configure_email_alerts(self, smtp_server: str, smtp_port: int,
                               username: str, password: str, recipients: List[str]):
        """Configure email notifications"""
        self.email_config = {
            'smtp_server': smtp_server,
            'smtp_port': smtp_port,
            'username': username,
            'password': password,
            'recipients': recipients
        }

    def create_alert(self, level: str, category: str, message: str, source: str) -> Optional[Alert]:
        """Record an alert; returns None when an identical one is still open"""
        if level not in ALERT_LEVELS:
            raise ValueError(f"Unknown alert level: {level}")

        with self._lock:
            for alert in self.alerts:
                if (alert.category == category and
                        alert.message == message and
                        not alert.resolved):
                    return None

            alert = Alert(
                id=f"alert_{int(time.time())}_{len(self.alerts)}",
                timestamp=datetime.now().isoformat(),
                level=level,
                category=category,
                message=message,
                source=source
            )
            self.alerts.append(alert)

        log_level = getattr(logging, level.upper(), logging.INFO)
        logger.log(log_level, f"ALERT [{category}]: {message}")

        if self.email_config and level in ('error', 'critical'):
            self._send_email_alert(alert)

        return alert

    def _send_email_alert(self, alert: Alert):
        try:
            msg = MIMEMultipart()
            msg['From'] = self.email_config['username']
            msg['To'] = ', '.join(self.email_config['recipients'])
            msg['Subject'] = f"Site Visibility Alert - {alert.level.upper()}"

            body = f"""
            Alert Details:
            - Level: {alert.level.upper()}
            - Category: {alert.category}
            - Message: {alert.message}
            - Source: {alert.source}
            - Timestamp: {alert.timestamp}

            Please check the site health report.
            """

            msg.attach(MIMEText(body, 'plain'))

            server = smtplib.SMTP(self.email_config['smtp_server'], self.email_config['smtp_port'])
            server.starttls()
            server.login(self.email_config['username'], self.email_config['password'])
            server.sendmail(self.email_config['username'], self.email_config['recipients'], msg.as_string())
            server.quit()

            logger.info(f"Email alert sent for: {alert.message}")

        except Exception as e:
            logger.error(f"Failed to send email alert: {e}")

    def resolve_alert(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self.alerts:
                if alert.id == alert_id and not alert.resolved:
                    alert.resolved = True
                    alert.resolved_at = datetime.now().isoformat()
                    logger.info(f"Alert resolved: {alert.message}")
                    return True
        return False

    def get_active_alerts(self) -> List[Alert]:
        return [alert for alert in self.alerts if not alert.resolved]

    def get_all_alerts(self) -> List[Alert]:
        return self.alerts.copy()
