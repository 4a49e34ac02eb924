import argparse
import json

from dotenv import load_dotenv

from hts_classifier.pipeline import ClassificationPipeline

load_dotenv()


def main():
    parser = argparse.ArgumentParser(description="Classify a product description into an HTS code.")
    parser.add_argument("description", help="Free-text product description")
    parser.add_argument("--country", default=None, help="Country of origin")
    parser.add_argument("-k", type=int, default=None, help="Number of candidates to retrieve")
    args = parser.parse_args()

    pipeline = ClassificationPipeline.from_config()
    outcome = pipeline.run(args.description, country_of_origin=args.country, k=args.k)

    print(f"HTTP {outcome.http_status}")
    print(json.dumps(outcome.to_payload(), indent=2))


if __name__ == "__main__":
    main()
