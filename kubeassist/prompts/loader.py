from pathlib import Path


class Loader:
    def __init__(self):
        self.prompts_dir = Path(__file__).parent

    def load(self, name: str) -> str:
        prompt_file = self.prompts_dir / f"{name}.md"
        with open(prompt_file, "r", encoding="utf-8") as file:
            content = file.read()
        return content.strip()
