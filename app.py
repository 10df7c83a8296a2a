import logging
from flask import Flask, jsonify
from flask_cors import CORS
from db import db
from config import Config
from routes import *
from repositories.graph import GraphStore
from repositories.insights import InsightStore
from services.ai_client import LLMClient
from services.batch_store import BatchJobStore
from services.insights import InsightSynthesizer
from services.jira_client import JiraClient
from services.job_runner import BatchProcessor
from services.pain_points import DetectionPolicy
from services.posthog_client import PostHogClient


def build_batch_processor(app, event_source=None, llm=None):
    """Wire the pipeline from app.config; collaborators can be passed in (tests, scripts)."""
    config = app.config
    event_source = event_source or PostHogClient(
        config["POSTHOG_HOST"], config["POSTHOG_PROJECT_ID"], config["POSTHOG_API_KEY"],
    )
    llm = llm or LLMClient(config["OPENAI_API_KEY"], config["OPENAI_MODEL"], config["OPENAI_BASE_URL"])

    # db.session is scoped per app context, so the same processor works from any thread
    return BatchProcessor(
        event_source=event_source,
        graph_store=GraphStore(db.session),
        synthesizer=InsightSynthesizer(llm, rerank=config["INSIGHT_RERANK"]),
        insight_store=InsightStore(db.session),
        job_store=app.extensions["batch_store"],
        policy=DetectionPolicy.from_config(config),
        window_hours=config["BATCH_WINDOW_HOURS"],
        page_limit=config["POSTHOG_PAGE_LIMIT"],
    )


def create_app(config_object=Config, event_source=None, llm=None, **overrides):
    # Initialize Flask app
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    logging.basicConfig(level=app.config["LOG_LEVEL"],
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Enable CORS
    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Initialize extensions
    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions["batch_store"] = BatchJobStore(history_limit=app.config["BATCH_HISTORY_LIMIT"])
    app.extensions["batch_processor"] = build_batch_processor(app, event_source=event_source, llm=llm)
    app.extensions["jira_client"] = JiraClient(
        app.config["JIRA_HOST"], app.config["JIRA_EMAIL"],
        app.config["JIRA_API_TOKEN"], app.config["JIRA_PROJECT_KEY"],
    )

    # Register blueprints
    app.register_blueprint(batch_blueprint, url_prefix='/api/batch')
    app.register_blueprint(insights_blueprint, url_prefix='/api/insights')
    app.register_blueprint(analytics_blueprint, url_prefix='/api/analytics')

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000)
