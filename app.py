import sys
import os
import logging

from invoice_reconciliation.config.app_config import ReconciliationConfig

# Set up root logger before the engine and app are created
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, ReconciliationConfig.LOG_LEVEL, logging.INFO))
handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
root_logger.addHandler(handler)

root_logger.info("App starting up - Python version: %s", sys.version)
root_logger.info("Working directory: %s", os.getcwd())
root_logger.info("Configuration: %s", ReconciliationConfig.get_config_summary())

from invoice_reconciliation.api import create_app

app = create_app()

if __name__ == '__main__':
    # For local development
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 8088)))
