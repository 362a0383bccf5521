"""Deliverable handlers: map a planned deliverable to files to write.

Handlers are pure. The completion engine collects their output per step and
writes it through the tool invoker.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from phase_engine.constants import DEFAULT_LIMITS
from phase_engine.models import ImplementationStep, PlanningReport
from phase_engine.tables import CORE_FALLBACK_FILES, DELIVERABLE_KINDS


@dataclass(frozen=True)
class FileWrite:
	path: str
	content: str

	def as_payload(self) -> dict[str, str]:
		return {"path": self.path, "content": self.content}


@dataclass(frozen=True)
class DeliverableContext:
	"""What the handlers know about the project being built."""

	project_name: str
	vision: str
	planning: PlanningReport | None = None

	@property
	def typed(self) -> bool:
		if self.planning is None:
			return False
		return any("TypeScript" in d.chosen for d in self.planning.tech_stack)

	@property
	def ext(self) -> str:
		return "ts" if self.typed else "js"

	def has(self, category: str) -> bool:
		if self.planning is None:
			return False
		return any(d.category == category for d in self.planning.tech_stack)


def project_name_for(directory: str) -> str:
	name = PurePosixPath(directory.replace("\\", "/")).name or "project"
	return re.sub(r"[^a-z0-9._-]+", "-", name.lower()).strip("-") or "project"


def is_path_like(deliverable: str) -> bool:
	return " " not in deliverable.strip() and ("." in deliverable or "/" in deliverable)


def classify_deliverable(deliverable: str) -> str:
	"""Return readme/manifest/test/setup/core/docs, or generic."""
	lowered = deliverable.lower()
	for kind, markers in DELIVERABLE_KINDS:
		if any(m in lowered for m in markers):
			return kind
	return "generic"


# -- templates --


def readme_template(ctx: DeliverableContext) -> str:
	lines = [f"# {ctx.project_name}", "", ctx.vision.strip() or "Project description.", ""]
	if ctx.planning and ctx.planning.features:
		lines.append("## Features")
		lines.append("")
		lines.extend(f"- {f}" for f in ctx.planning.features)
		lines.append("")
	if ctx.planning and ctx.planning.tech_stack:
		lines.append("## Tech Stack")
		lines.append("")
		lines.extend(f"- **{d.category}**: {d.chosen}" for d in ctx.planning.tech_stack)
		lines.append("")
	lines.extend([
		"## Getting Started",
		"",
		"```bash",
		"npm install",
		"npm run dev",
		"```",
		"",
		"## Testing",
		"",
		"```bash",
		"npm test",
		"```",
		"",
	])
	return "\n".join(lines)


def manifest_template(ctx: DeliverableContext) -> str:
	manifest: dict[str, object] = {
		"name": ctx.project_name,
		"version": "0.1.0",
		"description": ctx.vision.strip()[:120],
		"private": True,
		"type": "module",
		"scripts": {
			"dev": "vite" if ctx.has("frontend") else "node src/index.js",
			"build": "vite build" if ctx.has("frontend") else ("tsc" if ctx.typed else "echo 'no build step'"),
			"test": "vitest run" if _test_runner(ctx) == "Vitest" else "jest",
			"lint": "eslint src",
		},
	}
	if ctx.planning is not None:
		deps = ctx.planning.dependencies
		if deps.production:
			manifest["dependencies"] = {d.name: d.version for d in deps.production}
		if deps.development:
			manifest["devDependencies"] = {d.name: d.version for d in deps.development}
	return json.dumps(manifest, indent=2) + "\n"


def _test_runner(ctx: DeliverableContext) -> str:
	if ctx.planning is None:
		return "Jest"
	for d in ctx.planning.tech_stack:
		if d.category == "test":
			return d.chosen
	return "Jest"


GITIGNORE_TEMPLATE = """node_modules/
dist/
build/
coverage/
.env
.env.local
*.log
.DS_Store
"""

TSCONFIG_TEMPLATE = json.dumps({
	"compilerOptions": {
		"target": "ES2020",
		"module": "ESNext",
		"moduleResolution": "bundler",
		"jsx": "react-jsx",
		"strict": True,
		"esModuleInterop": True,
		"skipLibCheck": True,
		"outDir": "dist",
	},
	"include": ["src"],
}, indent=2) + "\n"

ESLINT_TEMPLATE = json.dumps({
	"root": True,
	"env": {"browser": True, "node": True, "es2022": True},
	"extends": ["eslint:recommended"],
	"parserOptions": {"ecmaVersion": "latest", "sourceType": "module"},
}, indent=2) + "\n"

APP_TEMPLATE = """import { useState } from 'react';

export default function App() {
  const [count, setCount] = useState(0);

  return (
    <main>
      <h1>{title}</h1>
      <button onClick={() => setCount(count + 1)}>Clicked {count} times</button>
    </main>
  );
}
"""

SERVER_TEMPLATE = """import express from 'express';
import cors from 'cors';

const app = express();
const port = process.env.PORT || 3000;

app.use(cors());
app.use(express.json());

app.get('/health', (req, res) => {
  res.json({ status: 'ok' });
});

app.listen(port, () => {
  console.log(`Server listening on port ${port}`);
});

export default app;
"""

MODULE_TEMPLATE = """// {purpose}

export function main() {{
  return '{name}';
}}
"""

TEST_TEMPLATE = """import {{ describe, it, expect }} from '{runner}';

describe('{suite}', () => {{
  it('runs', () => {{
    expect(true).toBe(true);
  }});
}});
"""


def template_for_path(path: str, ctx: DeliverableContext, purpose: str = "") -> str:
	"""Content for a concrete file path, by name then by extension."""
	name = PurePosixPath(path).name
	lowered = name.lower()
	if lowered == "readme.md":
		return readme_template(ctx)
	if lowered == "package.json":
		return manifest_template(ctx)
	if lowered == ".gitignore":
		return GITIGNORE_TEMPLATE
	if lowered == "tsconfig.json":
		return TSCONFIG_TEMPLATE
	if lowered.startswith(".eslintrc"):
		return ESLINT_TEMPLATE
	if lowered.startswith("app.") and lowered.endswith(("x",)):
		return APP_TEMPLATE.replace("{title}", ctx.project_name)
	if lowered.startswith("server."):
		return SERVER_TEMPLATE
	if ".test." in lowered or ".spec." in lowered:
		runner = "vitest" if _test_runner(ctx) == "Vitest" else "@jest/globals"
		return TEST_TEMPLATE.format(runner=runner, suite=name.split(".")[0])
	if lowered.endswith((".js", ".ts", ".jsx", ".tsx", ".mjs")):
		return MODULE_TEMPLATE.format(purpose=purpose or f"{name} module", name=name.split(".")[0])
	if lowered.endswith(".md"):
		return f"# {name[:-3]}\n\n{purpose or ctx.vision.strip()}\n"
	return f"{purpose or name}\n"


# -- handlers --


def _readme(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	return [FileWrite("README.md", readme_template(ctx))]


def _manifest(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	return [FileWrite("package.json", manifest_template(ctx))]


def _setup(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	lowered = deliverable.lower()
	if "tsconfig" in lowered:
		return [FileWrite("tsconfig.json", TSCONFIG_TEMPLATE)]
	if ".gitignore" in lowered:
		return [FileWrite(".gitignore", GITIGNORE_TEMPLATE)]
	if ".eslintrc" in lowered:
		return [FileWrite(".eslintrc.json", ESLINT_TEMPLATE)]
	if "vite.config" in lowered:
		return [FileWrite(f"vite.config.{ctx.ext}", "import { defineConfig } from 'vite';\n\nexport default defineConfig({});\n")]
	if "directory structure" in lowered:
		dirs = ["src", "tests", "docs"]
		if ctx.planning is not None and ctx.planning.file_structure.directories:
			dirs = [d.path for d in ctx.planning.file_structure.directories]
		return [FileWrite(f"{d}/.gitkeep", "") for d in dirs]
	if "server" in lowered:
		return [FileWrite(f"config/server.{ctx.ext}", "export const port = Number(process.env.PORT || 3000);\n")]
	if "database" in lowered:
		return [FileWrite(f"config/database.{ctx.ext}", "export const databaseUrl = process.env.DATABASE_URL || '';\n")]
	return [FileWrite(".eslintrc.json", ESLINT_TEMPLATE), FileWrite(".gitignore", GITIGNORE_TEMPLATE)]


def _core(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	if is_path_like(deliverable):
		return [FileWrite(deliverable, template_for_path(deliverable, ctx, step.title))]
	limit = DEFAULT_LIMITS["max_core_files"]
	planned = []
	if ctx.planning is not None:
		planned = [
			f for f in ctx.planning.file_structure.files
			if f.path.startswith("src/")
		][:limit]
	if planned:
		return [FileWrite(f.path, template_for_path(f.path, ctx, f.purpose)) for f in planned]
	return [FileWrite(p, template_for_path(p, ctx, step.title)) for p in CORE_FALLBACK_FILES]


def _test(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	lowered = deliverable.lower()
	if is_path_like(deliverable):
		return [FileWrite(deliverable, template_for_path(deliverable, ctx, step.title))]
	if "integration" in lowered:
		path = f"tests/integration/app.test.{ctx.ext}"
	elif "util" in lowered or "helper" in lowered:
		return [FileWrite(f"tests/helpers/setup.{ctx.ext}", "export function setup() {\n  return {};\n}\n")]
	else:
		path = f"tests/unit/app.test.{ctx.ext}"
	return [FileWrite(path, template_for_path(path, ctx))]


def _docs(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	lowered = deliverable.lower()
	if is_path_like(deliverable):
		return [FileWrite(deliverable, template_for_path(deliverable, ctx, step.title))]
	if "api" in lowered:
		path = "docs/API.md"
	elif "usage" in lowered or "example" in lowered:
		path = "docs/USAGE.md"
	else:
		path = "docs/GUIDE.md"
	return [FileWrite(path, f"# {deliverable}\n\n{ctx.vision.strip()}\n")]


def _generic(deliverable: str, step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	if is_path_like(deliverable):
		return [FileWrite(deliverable, template_for_path(deliverable, ctx, step.title))]
	return []


HANDLERS = {
	"readme": _readme,
	"manifest": _manifest,
	"setup": _setup,
	"core": _core,
	"test": _test,
	"docs": _docs,
	"generic": _generic,
}


def files_for_step(step: ImplementationStep, ctx: DeliverableContext) -> list[FileWrite]:
	"""All files a step produces, first writer wins on a repeated path."""
	files: dict[str, FileWrite] = {}
	for deliverable in step.deliverables:
		handler = HANDLERS[classify_deliverable(deliverable)]
		for fw in handler(deliverable, step, ctx):
			files.setdefault(fw.path, fw)
	return list(files.values())


def placeholder_for(path: str, ctx: DeliverableContext) -> FileWrite:
	return FileWrite(path, template_for_path(path, ctx, "Placeholder created during healing"))
