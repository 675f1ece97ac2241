from flask import Flask, jsonify

from maci.config import MaciConfig, setup_logging
from maci.contracts.clock import Clock
from maci.contracts.maci import Maci
from maci.contracts.storage import open_db
from maci.contracts.verifier import Verifier, Groth16Oracle, MockOracle
from maci.contracts.vk_registry import VkRegistry

from maci_routes import maci_bp, init_maci_bp


def build_maci(config, clock=None):
    db = open_db(config.db_path)
    oracle = MockOracle() if config.verifier == "mock" else Groth16Oracle()
    return Maci(
        config.state_tree_depth,
        VkRegistry(db),
        Verifier(oracle),
        clock=clock if clock is not None else Clock(),
        db=db,
    )


def create_app(config=None, clock=None):
    config = config if config is not None else MaciConfig.from_env()
    setup_logging(config)

    app = Flask(__name__)
    app.secret_key = config.secret_key
    app.config["MACI"] = config

    maci = build_maci(config, clock)
    init_maci_bp(maci)
    app.register_blueprint(maci_bp)

    @app.route("/")
    def index():
        return jsonify({
            "service": "maci",
            "state_tree_depth": maci.state_tree_depth,
            "num_sign_ups": maci.num_sign_ups,
            "num_polls": len(maci.polls),
            "verifier": config.verifier,
        })

    return app


app = create_app()


if __name__ == "__main__":
    app.run()
