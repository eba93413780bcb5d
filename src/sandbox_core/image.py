from __future__ import annotations

from pathlib import Path

from sandbox_core.errors import ConfigUnavailableError
from sandbox_core.paths import SandboxPaths


SANDBOX_DOCKERFILE = r"""FROM debian:bookworm-slim

ENV HOME=/home/claude
ENV LANG=C.UTF-8
ENV LC_ALL=C.UTF-8
ENV TERM=xterm-256color

RUN apt-get update && apt-get install -y \
    curl \
    git \
    ca-certificates \
    build-essential \
    pkg-config \
    libssl-dev \
    xz-utils \
    && rm -rf /var/lib/apt/lists/*

RUN useradd -m -s /bin/bash -d /home/claude claude && \
    mkdir -p /home/claude/workspace /home/claude/.claude /home/claude/.config /home/claude/.local/bin && \
    touch /home/claude/.claude.json /home/claude/.claude.json.backup && \
    chown -R claude:claude /home/claude

USER claude
WORKDIR /home/claude

ENV PATH="/home/claude/.local/bin:/home/claude/.cargo/bin:${PATH}"
ENV RUSTUP_HOME=/home/claude/.rustup
ENV CARGO_HOME=/home/claude/.cargo
ENV NVM_DIR=/home/claude/.nvm

RUN curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y --default-toolchain stable

RUN curl -o- https://raw.githubusercontent.com/nvm-sh/nvm/v0.40.1/install.sh | bash && \
    bash -c "source $NVM_DIR/nvm.sh && nvm install node"

RUN bash -c "source $NVM_DIR/nvm.sh && \
    ln -sf \$(which node) /home/claude/.local/bin/node && \
    ln -sf \$(which npm) /home/claude/.local/bin/npm && \
    ln -sf \$(which npx) /home/claude/.local/bin/npx"

RUN bash -c "source $NVM_DIR/nvm.sh && npm install -g @anthropic-ai/claude-code" && \
    bash -c "source $NVM_DIR/nvm.sh && ln -sf \$(which claude) /home/claude/.local/bin/claude"

RUN echo 'export PATH="/home/claude/.local/bin:/home/claude/.cargo/bin:$PATH"' >> /home/claude/.bashrc && \
    echo 'export NVM_DIR="$HOME/.nvm"' >> /home/claude/.bashrc && \
    echo '[ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"' >> /home/claude/.bashrc

WORKDIR /home/claude/workspace

CMD ["tail", "-f", "/dev/null"]
"""


def write_dockerfile(paths: SandboxPaths) -> Path:
    paths.ensure_root()
    try:
        paths.dockerfile.write_text(SANDBOX_DOCKERFILE, encoding="utf-8")
    except OSError as exc:
        raise ConfigUnavailableError(f"Unable to write {paths.dockerfile}: {exc}") from exc
    return paths.dockerfile
